"""Integration tests for landlord payout aggregation and disbursement."""

from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select

from rentflow.errors import (
    BadRequest,
    BelowMinimumPayout,
    ExternalGatewayError,
    NoEligiblePayments,
    Unauthorized,
    ValidationError,
)
from rentflow.models import (
    LandlordPayoutHistory,
    Payment,
    PaymentStatus,
    PayoutHistoryStatus,
    PayoutStatus,
)
from rentflow.services.payout_gateway import PayoutGateway
from rentflow.services.payout_service import PayoutService, make_external_id, parse_payment_ids


def _statuses(db_session, *ids) -> list[PayoutStatus]:
    db_session.expire_all()
    return [db_session.get(Payment, payment_id).payout_status for payment_id in ids]


def _history(db_session) -> list[LandlordPayoutHistory]:
    return db_session.execute(select(LandlordPayoutHistory)).scalars().all()


@pytest.fixture
def payable_rental(rental, make_payout_account):
    make_payout_account(rental.landlord_id)
    return rental


class TestHelpers:
    def test_external_id_format(self):
        external_id = make_external_id(7)
        prefix, millis, landlord = external_id.split("-")
        assert prefix == "payout"
        assert millis.isdigit() and len(millis) >= 13
        assert landlord == "7"

    @pytest.mark.parametrize("value", [[], None, "1,2", [0], [-1], ["a"], [True]])
    def test_invalid_id_lists(self, value):
        with pytest.raises(ValidationError):
            parse_payment_ids(value)

    def test_duplicates_dropped(self):
        assert parse_payment_ids([3, 1, 3]) == [3, 1]


class TestDisburse:
    def test_success_moves_exactly_the_batch(self, db_session, gateway, payout_api, payable_rental, make_payment):
        make_payment(payable_rental.lease_id, "1000", payment_id=101)
        make_payment(payable_rental.lease_id, "2500.50", payment_id=102)
        make_payment(payable_rental.lease_id, "800", payment_id=103)

        result = PayoutService(db_session, gateway).disburse([101, 102])

        assert len(result.batches) == 1
        batch = result.batches[0]
        assert batch.landlord_id == payable_rental.landlord_id
        assert batch.amount == Decimal("3500.50")
        assert batch.payment_ids == [101, 102]
        assert _statuses(db_session, 101, 102, 103) == [
            PayoutStatus.IN_PAYOUT,
            PayoutStatus.IN_PAYOUT,
            PayoutStatus.UNPAID,
        ]

        history = _history(db_session)
        assert len(history) == 1
        assert history[0].status == PayoutHistoryStatus.ACCEPTED
        assert history[0].external_id == batch.external_id
        assert history[0].included_payments == [101, 102]
        assert history[0].gateway_payout_id == "disb-1"
        assert history[0].payout_method == "BANK"

        assert len(payout_api.requests) == 1
        request = payout_api.requests[0]
        assert request.headers["Idempotency-key"] == batch.external_id
        body = payout_api.bodies()[0]
        assert body["amount"] == 3500.5
        assert body["currency"] == "PHP"
        assert body["metadata"] == {"landlord_id": payable_rental.landlord_id, "payment_ids": [101, 102]}

    def test_one_batch_per_landlord(self, db_session, gateway, payout_api, payable_rental, make_rental, make_payout_account, make_payment):
        other = make_rental()
        make_payout_account(other.landlord_id)
        make_payment(payable_rental.lease_id, "600", payment_id=201)
        make_payment(other.lease_id, "700", payment_id=202)

        result = PayoutService(db_session, gateway).disburse([201, 202])

        assert sorted(b.landlord_id for b in result.batches) == sorted(
            [payable_rental.landlord_id, other.landlord_id]
        )
        assert len(payout_api.requests) == 2
        assert len(_history(db_session)) == 2

    def test_ineligible_payments_silently_excluded(self, db_session, gateway, payable_rental, make_payment):
        make_payment(payable_rental.lease_id, "500", payment_id=301)
        make_payment(payable_rental.lease_id, "500", payment_id=302, payment_status=PaymentStatus.PENDING)
        make_payment(payable_rental.lease_id, "500", payment_id=303, payout_status=PayoutStatus.PAID)

        result = PayoutService(db_session, gateway).disburse([301, 302, 303])

        assert result.batches[0].payment_ids == [301]
        assert _statuses(db_session, 302, 303) == [PayoutStatus.UNPAID, PayoutStatus.PAID]

    def test_no_eligible_payments(self, db_session, gateway, payout_api, payable_rental, make_payment):
        make_payment(payable_rental.lease_id, "500", payment_id=401, payment_status=PaymentStatus.FAILED)

        with pytest.raises(NoEligiblePayments):
            PayoutService(db_session, gateway).disburse([401, 999])
        assert payout_api.requests == []

    def test_landlord_without_active_account_excluded(self, db_session, gateway, rental, make_payout_account, make_payment):
        make_payout_account(rental.landlord_id, account_active=False)
        make_payment(rental.lease_id, "500", payment_id=501)

        with pytest.raises(NoEligiblePayments):
            PayoutService(db_session, gateway).disburse([501])

    def test_unavailable_channel_excluded(self, db_session, gateway, rental, make_payout_account, make_payment):
        make_payout_account(rental.landlord_id, channel_code="PH_GCASH", channel_available=False)
        make_payment(rental.lease_id, "500", payment_id=601)

        with pytest.raises(NoEligiblePayments):
            PayoutService(db_session, gateway).disburse([601])

    def test_below_minimum_aborts_everything(self, db_session, gateway, payout_api, payable_rental, make_rental, make_payout_account, make_payment):
        other = make_rental()
        make_payout_account(other.landlord_id)
        make_payment(payable_rental.lease_id, "5000", payment_id=701)
        make_payment(other.lease_id, "49.99", payment_id=702)

        with pytest.raises(BelowMinimumPayout) as exc_info:
            PayoutService(db_session, gateway).disburse([701, 702])

        assert exc_info.value.amount == Decimal("49.99")
        assert exc_info.value.landlord_id == other.landlord_id
        assert payout_api.requests == []
        assert _history(db_session) == []
        assert _statuses(db_session, 701, 702) == [PayoutStatus.UNPAID, PayoutStatus.UNPAID]

    def test_exact_minimum_is_allowed(self, db_session, gateway, payable_rental, make_payment):
        make_payment(payable_rental.lease_id, "50", payment_id=801)

        result = PayoutService(db_session, gateway).disburse([801])

        assert result.batches[0].amount == Decimal("50")

    @pytest.mark.parametrize("failure", [(400, {"error_code": "INVALID_ACCOUNT"}), "timeout"])
    def test_gateway_failure_changes_nothing(self, db_session, gateway, payout_api, payable_rental, make_payment, failure):
        payout_api.fail_on_call = 1
        payout_api.failure = failure
        make_payment(payable_rental.lease_id, "1000", payment_id=901)

        with pytest.raises(ExternalGatewayError) as exc_info:
            PayoutService(db_session, gateway).disburse([901])

        assert exc_info.value.completed == []
        assert _history(db_session) == []
        assert _statuses(db_session, 901) == [PayoutStatus.UNPAID]

    def test_failure_after_first_batch_keeps_it_committed(self, db_session, gateway, payout_api, payable_rental, make_rental, make_payout_account, make_payment):
        other = make_rental()
        make_payout_account(other.landlord_id)
        make_payment(payable_rental.lease_id, "1000", payment_id=1001)
        make_payment(other.lease_id, "2000", payment_id=1002)
        payout_api.fail_on_call = 2

        with pytest.raises(ExternalGatewayError) as exc_info:
            PayoutService(db_session, gateway).disburse([1001, 1002])

        history = _history(db_session)
        assert len(history) == 1
        assert exc_info.value.completed == [history[0].external_id]
        assert _statuses(db_session, 1001, 1002) == [PayoutStatus.IN_PAYOUT, PayoutStatus.UNPAID]

    def test_accepted_payout_with_plain_text_reply_is_recorded(self, db_session, payable_rental, make_payment):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, text="OK")

        gateway = PayoutGateway(
            base_url="https://payouts.test", secret_key="sk_test", transport=httpx.MockTransport(handler)
        )
        make_payment(payable_rental.lease_id, "1000", payment_id=1151)
        service = PayoutService(db_session, gateway)

        batch = service.disburse([1151]).batches[0]

        history = _history(db_session)
        assert len(history) == 1
        assert history[0].external_id == batch.external_id
        assert history[0].gateway_payout_id is None
        assert _statuses(db_session, 1151) == [PayoutStatus.IN_PAYOUT]

        with pytest.raises(NoEligiblePayments):
            service.disburse([1151])
        assert len(calls) == 1

    def test_disbursed_payments_not_selected_again(self, db_session, gateway, payable_rental, make_payment):
        make_payment(payable_rental.lease_id, "1000", payment_id=1101)
        service = PayoutService(db_session, gateway)
        service.disburse([1101])

        with pytest.raises(NoEligiblePayments):
            service.disburse([1101])


class TestEligibleListing:
    def test_groups_owed_payments(self, db_session, gateway, payable_rental, make_payment):
        make_payment(payable_rental.lease_id, "100.10", payment_id=1201)
        make_payment(payable_rental.lease_id, "200.20", payment_id=1202)
        make_payment(payable_rental.lease_id, "50", payment_id=1203, payout_status=PayoutStatus.IN_PAYOUT)

        groups = PayoutService(db_session, gateway).list_eligible_payments()

        assert len(groups) == 1
        assert groups[0].total_amount == Decimal("300.30")
        assert [p.id for p in groups[0].payments] == [1201, 1202]


class TestPayoutCallback:
    @pytest.fixture
    def batch(self, db_session, gateway, payable_rental, make_payment):
        make_payment(payable_rental.lease_id, "1000", payment_id=1301)
        make_payment(payable_rental.lease_id, "1000", payment_id=1302)
        return PayoutService(db_session, gateway).disburse([1301, 1302]).batches[0]

    def test_succeeded_marks_payments_paid(self, db_session, gateway, payout_token, batch):
        result = PayoutService(db_session, gateway).apply_payout_callback(
            payout_token, {"id": "disb-1", "reference_id": batch.external_id, "status": "SUCCEEDED"}
        )

        assert result.status == "processed"
        assert _statuses(db_session, 1301, 1302) == [PayoutStatus.PAID, PayoutStatus.PAID]
        assert _history(db_session)[0].status == PayoutHistoryStatus.SUCCEEDED

    def test_failed_leaves_payments_in_payout(self, db_session, gateway, payout_token, batch):
        PayoutService(db_session, gateway).apply_payout_callback(
            payout_token,
            {"reference_id": batch.external_id, "status": "FAILED", "failure_code": "INVALID_DESTINATION"},
        )

        assert _statuses(db_session, 1301, 1302) == [PayoutStatus.IN_PAYOUT, PayoutStatus.IN_PAYOUT]
        assert _history(db_session)[0].status == PayoutHistoryStatus.FAILED

    def test_repeated_callback_ignored(self, db_session, gateway, payout_token, batch):
        service = PayoutService(db_session, gateway)
        payload = {"reference_id": batch.external_id, "status": "SUCCEEDED"}
        service.apply_payout_callback(payout_token, payload)

        assert service.apply_payout_callback(payout_token, payload).reason == "duplicate"

    def test_unknown_reference_ignored(self, db_session, gateway, payout_token, batch):
        result = PayoutService(db_session, gateway).apply_payout_callback(
            payout_token, {"reference_id": "payout-1-1", "status": "SUCCEEDED"}
        )
        assert result.reason == "unknown_reference"

    def test_wrong_token(self, db_session, gateway, batch):
        with pytest.raises(Unauthorized):
            PayoutService(db_session, gateway).apply_payout_callback(
                "nope", {"reference_id": batch.external_id, "status": "SUCCEEDED"}
            )
        assert _statuses(db_session, 1301) == [PayoutStatus.IN_PAYOUT]

    def test_bad_payload(self, db_session, gateway, payout_token, batch):
        with pytest.raises(BadRequest):
            PayoutService(db_session, gateway).apply_payout_callback(payout_token, {"status": "SUCCEEDED"})
