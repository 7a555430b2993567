"""Contract tests for tenant payment and landlord review endpoints."""

from datetime import date

import pytest

from rentflow.services.billing_service import BillingService


@pytest.fixture
def billing_id(db_session, rated_rental) -> int:
    return BillingService(db_session).upsert_billing(
        unit_id=rated_rental.unit_id, reading_date=date(2025, 3, 5)
    ).billing.id


class TestProofOfPaymentEndpoint:
    def test_submit_returns_201_and_notifies_landlord(self, client, rated_rental, billing_id, mock_transport):
        response = client.post(
            "/api/tenant/payments/proof",
            json={
                "agreement_id": rated_rental.lease_id,
                "payment_type": "billing",
                "amount": "10500",
                "payment_method": "BANK_TRANSFER",
                "billing_id": billing_id,
                "proof_url": "https://files.example.com/p.png",
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["payment_status"] == "pending"
        assert body["payout_status"] == "unpaid"
        assert [m["user_id"] for m in mock_transport.messages] == [rated_rental.landlord_user_id]

    def test_duplicate_reference_is_409(self, client, rated_rental):
        payload = {
            "agreement_id": rated_rental.lease_id,
            "payment_type": "security_deposit",
            "amount": 5000,
            "receipt_reference": "client-42",
        }
        assert client.post("/api/tenant/payments/proof", json=payload).status_code == 201

        response = client.post("/api/tenant/payments/proof", json=payload)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "duplicate"
        assert response.json()["error"]["receipt_reference"] == "client-42"

    def test_invalid_amount_is_400(self, client, rated_rental):
        response = client.post(
            "/api/tenant/payments/proof",
            json={"agreement_id": rated_rental.lease_id, "payment_type": "advance_rent", "amount": 0},
        )
        assert response.status_code == 400
        assert response.json()["error"]["field"] == "amount"


class TestReviewEndpoint:
    def _submit(self, client, rental, billing_id) -> int:
        return client.post(
            "/api/tenant/payments/proof",
            json={
                "agreement_id": rental.lease_id,
                "payment_type": "billing",
                "amount": 10500,
                "billing_id": billing_id,
            },
        ).json()["id"]

    def test_approve(self, client, rated_rental, billing_id, mock_transport):
        payment_id = self._submit(client, rated_rental, billing_id)
        mock_transport.clear()

        response = client.post(f"/api/landlord/payments/{payment_id}/approve")

        assert response.status_code == 200
        assert response.json()["payment_status"] == "confirmed"
        assert client.get(f"/api/landlord/billing/{billing_id}").json()["status"] == "paid"
        assert [m["title"] for m in mock_transport.messages] == ["Payment approved"]

    def test_reject(self, client, rated_rental, billing_id):
        payment_id = self._submit(client, rated_rental, billing_id)

        response = client.post(f"/api/landlord/payments/{payment_id}/reject")

        assert response.json()["payment_status"] == "failed"
        assert client.get(f"/api/landlord/billing/{billing_id}").json()["status"] == "unpaid"

    def test_unknown_action_is_400(self, client, rated_rental, billing_id):
        payment_id = self._submit(client, rated_rental, billing_id)
        assert client.post(f"/api/landlord/payments/{payment_id}/refund").status_code == 400

    def test_unknown_payment_is_404(self, client, rated_rental):
        assert client.post("/api/landlord/payments/999/approve").status_code == 404
