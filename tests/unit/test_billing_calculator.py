"""Unit tests for the submetered bill calculator."""

from decimal import Decimal

import pytest

from rentflow.models.lease import PdcStatus
from rentflow.services.billing_calculator import (
    compute_bill,
    meter_usage,
    pdc_credit_for,
    round2,
    sum_amounts,
    to_decimal,
)


class TestMeterUsage:
    """Usage between two readings."""

    def test_forward_reading(self):
        assert meter_usage(100, 105) == Decimal("5")

    @pytest.mark.parametrize(
        "previous, current",
        [(105, 100), (None, 100), (100, None), ("", "12"), ("abc", 12), (None, None)],
    )
    def test_usage_never_negative(self, previous, current):
        """Rollback, missing or non-numeric readings count as zero usage."""
        assert meter_usage(previous, current) == Decimal("0")

    def test_string_readings(self):
        assert meter_usage("1200.5", "1210.75") == Decimal("10.25")


class TestHelpers:
    def test_round2_half_up(self):
        assert round2(Decimal("2.345")) == Decimal("2.35")
        assert round2(Decimal("2.344")) == Decimal("2.34")

    def test_to_decimal_rejects_non_numbers(self):
        assert to_decimal(None) is None
        assert to_decimal(True) is None
        assert to_decimal("  ") is None
        assert to_decimal("nan") is None
        assert to_decimal("inf") is None
        assert to_decimal(" 12.5 ") == Decimal("12.5")

    def test_sum_amounts_accepts_mixed_items(self):
        class Line:
            amount = Decimal("50")

        items = [100, {"amount": "25.50"}, Line(), {"amount": -10}, {"amount": "x"}]
        assert sum_amounts(items) == Decimal("175.50")

    def test_sum_amounts_empty(self):
        assert sum_amounts(None) == Decimal("0")
        assert sum_amounts([]) == Decimal("0")


class TestPdcCredit:
    """Post-dated check credit against rent."""

    def test_credit_capped_at_rent(self):
        pdc = {"status": PdcStatus.CLEARED, "amount": Decimal("15000")}
        assert pdc_credit_for(pdc, Decimal("10000")) == Decimal("10000")

    def test_credit_below_rent(self):
        pdc = {"status": "cleared", "amount": "8000"}
        assert pdc_credit_for(pdc, Decimal("10000")) == Decimal("8000")

    @pytest.mark.parametrize("status", [PdcStatus.PENDING, PdcStatus.BOUNCED, PdcStatus.REPLACED, None])
    def test_uncleared_check_gives_no_credit(self, status):
        assert pdc_credit_for({"status": status, "amount": 5000}, Decimal("10000")) == Decimal("0")

    def test_object_check(self):
        class Check:
            status = PdcStatus.CLEARED
            amount = Decimal("3000")

        assert pdc_credit_for(Check(), Decimal("10000")) == Decimal("3000")


class TestComputeBill:
    """Total-due formula."""

    def test_reference_example(self):
        """rent 10000 + dues 500 + water 5x20 + elec 100x12 + 300 - 200 = 11900."""
        bill = compute_bill(
            water_prev=100,
            water_curr=105,
            elec_prev=2000,
            elec_curr=2100,
            water_rate=20,
            elec_rate=12,
            rent_amount=10000,
            assoc_dues=500,
            extra_charges=[{"amount": 300}],
            discounts=[{"amount": 200}],
            pdc=None,
        )
        assert bill.water_usage == Decimal("5")
        assert bill.elec_usage == Decimal("100")
        assert bill.water_cost == Decimal("100.00")
        assert bill.elec_cost == Decimal("1200.00")
        assert bill.pdc_credit == Decimal("0")
        assert bill.total_amount_due == Decimal("11900")

    def test_cleared_pdc_reduces_total(self):
        bill = compute_bill(
            rent_amount=10000,
            assoc_dues=500,
            pdc={"status": "cleared", "amount": 15000},
        )
        assert bill.pdc_credit == Decimal("10000")
        assert bill.total_amount_due == Decimal("500")

    def test_costs_rounded_to_cents(self):
        bill = compute_bill(water_prev=0, water_curr=3, water_rate="12.3456")
        assert bill.water_cost == Decimal("37.04")

    def test_partial_form_is_safe(self):
        """Missing and garbage values never raise."""
        bill = compute_bill(water_prev="abc", elec_curr=10, rent_amount="", assoc_dues=None)
        assert bill.total_amount_due == Decimal("0")

    def test_negative_total_kept_signed(self):
        bill = compute_bill(rent_amount=1000, discounts=[1500])
        assert bill.total_amount_due == Decimal("-500")

    def test_deterministic(self):
        kwargs = dict(water_prev=1, water_curr=9, water_rate=20, rent_amount=5000)
        assert compute_bill(**kwargs) == compute_bill(**kwargs)
