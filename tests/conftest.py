"""Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database. The API client overrides
get_db, the payout gateway (httpx.MockTransport) and the notification
dispatcher (MockTransport) so nothing leaves the process.
"""

import json
from datetime import date
from decimal import Decimal
from typing import NamedTuple

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from rentflow.api.app import app
from rentflow.api.deps import get_notification_dispatcher, get_payout_gateway
from rentflow.config import reset_settings
from rentflow.models import (
    Base,
    Landlord,
    LandlordPayoutAccount,
    LeaseAgreement,
    LeaseStatus,
    Payment,
    PaymentStatus,
    PaymentType,
    PayoutChannel,
    PayoutStatus,
    Property,
    Unit,
    User,
    UtilityStatement,
    UtilityType,
)
from rentflow.services.db import build_engine, get_db
from rentflow.services.notification_service import MockTransport, NotificationDispatcher
from rentflow.services.payout_gateway import PayoutGateway

WEBHOOK_TOKEN = "test-invoice-token"
PAYOUT_TOKEN = "test-payout-token"


class Rental(NamedTuple):
    """Ids of a seeded landlord -> property -> unit -> active lease chain."""

    landlord_user_id: int
    landlord_id: int
    tenant_user_id: int
    property_id: int
    unit_id: int
    lease_id: int


class FakePayoutApi:
    """Records payout requests and answers like the gateway would."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.fail_on_call: int | None = None
        self.failure: tuple[int, dict] | str = (400, {"error_code": "INVALID_ACCOUNT"})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_on_call is not None and len(self.requests) >= self.fail_on_call:
            if self.failure == "timeout":
                raise httpx.ReadTimeout("timed out", request=request)
            status_code, body = self.failure
            return httpx.Response(status_code, json=body)
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": f"disb-{len(self.requests)}",
                "reference_id": body["reference_id"],
                "status": "ACCEPTED",
            },
        )

    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Webhook secrets and payout floor for every test."""
    monkeypatch.setenv("GATEWAY_WEBHOOK_TOKEN", WEBHOOK_TOKEN)
    monkeypatch.setenv("PAYOUT_WEBHOOK_TOKEN", PAYOUT_TOKEN)
    monkeypatch.setenv("MINIMUM_PAYOUT", "50")
    monkeypatch.setenv("PAYOUT_CURRENCY", "PHP")
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def engine():
    """In-memory database with all tables created."""
    test_engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    """Create test database session."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def mock_transport():
    return MockTransport()


@pytest.fixture
def dispatcher(session_factory, mock_transport):
    return NotificationDispatcher(session_factory, mock_transport)


@pytest.fixture
def payout_api():
    return FakePayoutApi()


@pytest.fixture
def gateway(payout_api):
    """Payout gateway client wired to the fake payout API."""
    return PayoutGateway(
        base_url="https://payouts.test",
        secret_key="sk_test",
        timeout=5.0,
        transport=httpx.MockTransport(payout_api.handler),
    )


@pytest.fixture
def client(db_session, gateway, dispatcher):
    """Provide a FastAPI test client with test database."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payout_gateway] = lambda: gateway
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher

    yield TestClient(app)

    app.dependency_overrides.clear()


def seed_rental(
    db,
    rent_amount: Decimal = Decimal("10000"),
    assoc_dues: Decimal = Decimal("500"),
    effective_rent_amount: Decimal | None = None,
    landlord_id: int | None = None,
) -> Rental:
    """Create landlord (unless given), property, unit and an active lease."""
    landlord = db.get(Landlord, landlord_id) if landlord_id is not None else None
    if landlord is None:
        landlord_user = User(name="Lara Landlord", email="lara@example.com")
        db.add(landlord_user)
        db.flush()
        landlord = Landlord(user_id=landlord_user.id, display_name="Lara Rentals")
        db.add(landlord)
        db.flush()

    tenant = User(name="Toni Tenant", email="toni@example.com")
    db.add(tenant)
    prop = Property(landlord_id=landlord.id, property_name="Acacia Residences", assoc_dues=assoc_dues)
    db.add(prop)
    db.flush()

    unit = Unit(
        property_id=prop.id,
        unit_name="3B",
        rent_amount=rent_amount,
        effective_rent_amount=effective_rent_amount,
    )
    db.add(unit)
    db.flush()

    lease = LeaseAgreement(
        unit_id=unit.id,
        tenant_user_id=tenant.id,
        status=LeaseStatus.ACTIVE,
        start_date=date(2025, 1, 1),
        end_date=date(2025, 12, 31),
    )
    db.add(lease)
    db.commit()

    return Rental(
        landlord_user_id=landlord.user_id,
        landlord_id=landlord.id,
        tenant_user_id=tenant.id,
        property_id=prop.id,
        unit_id=unit.id,
        lease_id=lease.id,
    )


def seed_statements(
    db,
    property_id: int,
    water: tuple[str, str] = ("2000", "100"),
    electricity: tuple[str, str] = ("1200", "100"),
) -> None:
    """Provider statements giving water 20/m3 and electricity 12/kWh by default."""
    for utility_type, (billed, consumption) in (
        (UtilityType.WATER, water),
        (UtilityType.ELECTRICITY, electricity),
    ):
        db.add(
            UtilityStatement(
                property_id=property_id,
                utility_type=utility_type,
                period_start=date(2025, 2, 1),
                period_end=date(2025, 2, 28),
                total_billed_amount=Decimal(billed),
                total_consumption=Decimal(consumption),
            )
        )
    db.commit()


def seed_payout_account(
    db,
    landlord_id: int,
    channel_code: str = "PH_BDO",
    channel_available: bool = True,
    account_active: bool = True,
) -> LandlordPayoutAccount:
    channel = db.query(PayoutChannel).filter_by(channel_code=channel_code).one_or_none()
    if channel is None:
        channel = PayoutChannel(
            channel_code=channel_code, channel_type="BANK", is_available=channel_available
        )
        db.add(channel)
    account = LandlordPayoutAccount(
        landlord_id=landlord_id,
        channel_code=channel_code,
        account_name="Lara Landlord",
        account_number="001234567890",
        bank_name="BDO",
        is_active=account_active,
    )
    db.add(account)
    db.commit()
    return account


def seed_payment(
    db,
    lease_id: int,
    net_amount: Decimal,
    payment_id: int | None = None,
    payment_status: PaymentStatus = PaymentStatus.CONFIRMED,
    payout_status: PayoutStatus = PayoutStatus.UNPAID,
) -> Payment:
    """Insert a gateway-confirmed payment (optionally with a fixed id)."""
    payment = Payment(
        agreement_id=lease_id,
        payment_type=PaymentType.MONTHLY_BILLING,
        payment_method="GCASH",
        amount_paid=net_amount,
        gross_amount=net_amount,
        gateway_fee=Decimal("0"),
        net_amount=net_amount,
        payment_status=payment_status,
        payout_status=payout_status,
        receipt_reference=f"inv-{lease_id}-{payment_id or net_amount}-{db.query(Payment).count()}",
    )
    if payment_id is not None:
        payment.id = payment_id
    db.add(payment)
    db.commit()
    return payment


@pytest.fixture
def rental(db_session) -> Rental:
    return seed_rental(db_session)


@pytest.fixture
def rated_rental(db_session, rental) -> Rental:
    seed_statements(db_session, rental.property_id)
    return rental


@pytest.fixture
def make_rental(db_session):
    return lambda **kwargs: seed_rental(db_session, **kwargs)


@pytest.fixture
def make_payout_account(db_session):
    return lambda landlord_id, **kwargs: seed_payout_account(db_session, landlord_id, **kwargs)


@pytest.fixture
def make_payment(db_session):
    return lambda lease_id, net_amount, **kwargs: seed_payment(
        db_session, lease_id, Decimal(str(net_amount)), **kwargs
    )


@pytest.fixture
def webhook_token() -> str:
    return WEBHOOK_TOKEN


@pytest.fixture
def payout_token() -> str:
    return PAYOUT_TOKEN
