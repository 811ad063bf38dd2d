from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.commission.calculator import CommissionCalculator, SettledOrder, effective_rate, round_minor
from domain.commission.rates import RateResolver, RateSource, RateTable
from domain.common.exceptions import InvalidAmountError
from domain.vendor.entity import PayoutFrequency, PayoutMethod, SubscriptionTier, VendorPayoutProfile


SETTLED = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def vendor():
    return VendorPayoutProfile(
        vendor_id="v1",
        subscription_tier=SubscriptionTier.PREMIUM,
        custom_rate=None,
        payout_frequency=PayoutFrequency.MONTHLY,
        minimum_payout=Decimal("100"),
        payout_method=PayoutMethod.STRIPE,
        payout_destination="acct_1",
        currency="EUR",
    )


@pytest.fixture
def calculator():
    table = RateTable.build(default_rate=Decimal("0.10"), tier_rates={"premium": Decimal("0.08")})
    return CommissionCalculator(RateResolver(table))


def test_commission_and_net_payout(calculator, vendor):
    calc = calculator.calculate(SettledOrder("o1", "v1", settled_at=SETTLED), vendor, Decimal("199.99"))
    assert calc.rate == Decimal("0.08")
    assert calc.rate_source == RateSource.SUBSCRIPTION_TIER
    assert calc.commission_amount == Decimal("16.00")
    assert calc.net_payout == Decimal("183.99")
    assert calc.commission_amount + calc.net_payout == calc.gross_amount
    assert calc.currency == "EUR"
    assert calc.as_of == SETTLED


def test_rounding_is_half_even():
    assert round_minor(Decimal("0.125")) == Decimal("0.12")
    assert round_minor(Decimal("0.135")) == Decimal("0.14")
    assert round_minor(Decimal("12.5"), exponent=0) == Decimal("12")


@pytest.mark.parametrize("gross", ["0", "-10.00", "0.004", "0.005"])
def test_non_positive_gross_rejected(calculator, vendor, gross):
    with pytest.raises(InvalidAmountError):
        calculator.calculate(SettledOrder("o1", "v1", settled_at=SETTLED), vendor, Decimal(gross))


def test_identical_inputs_identical_outputs(calculator, vendor):
    order = SettledOrder("o1", "v1", category_ids=("a",), settled_at=SETTLED)
    assert calculator.calculate(order, vendor, Decimal("10")) == calculator.calculate(order, vendor, Decimal("10"))


def test_as_of_is_required(calculator, vendor):
    with pytest.raises(ValueError):
        calculator.calculate(SettledOrder("o1", "v1"), vendor, Decimal("10"))


def test_effective_rate():
    assert effective_rate(Decimal("15"), Decimal("200")) == Decimal("0.0750")
    assert effective_rate(Decimal("0"), Decimal("0")) == Decimal("0")
