from datetime import datetime
from decimal import Decimal

import pytest

from domain.commission.entity import Commission, CommissionBreakdown, CommissionStatus
from domain.commission.rates import RateSource
from domain.common.exceptions import DomainValidationException
from domain.payout.entity import Payout, PayoutMetadata, PayoutOrigin, PayoutStatus
from domain.vendor.entity import PayoutMethod

from tests.conftest import NOW


def _payout(**overrides):
    values = dict(
        vendor_id="v1",
        amount=Decimal("100.00"),
        currency="USD",
        payment_method=PayoutMethod.SANDBOX,
        scheduled_date=NOW,
        metadata=PayoutMetadata(commission_ids=("c1",), created_by=PayoutOrigin.SCHEDULER),
    )
    values.update(overrides)
    return Payout(**values)


def test_payout_id_is_idempotency_key():
    p = _payout()
    assert p.idempotency_key == p.id
    assert p.commission_ids == ("c1",)
    assert p.retries_left == 3
    assert not p.is_terminal()


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": Decimal("0")},
        {"metadata": PayoutMetadata(commission_ids=(), created_by=PayoutOrigin.MANUAL)},
        {"retry_count": 4},
        {"retry_count": -1},
    ],
)
def test_payout_invariants(overrides):
    with pytest.raises(DomainValidationException):
        _payout(**overrides)


def test_naive_datetimes_are_taken_as_utc():
    p = _payout(scheduled_date=datetime(2026, 3, 2, 12, 0), status=PayoutStatus.COMPLETED)
    assert p.scheduled_date == NOW
    assert p.is_terminal()


def test_metadata_rejects_unknown_version():
    meta = PayoutMetadata(commission_ids=("c1", "c2"), created_by=PayoutOrigin.MANUAL, notes="n")
    assert PayoutMetadata.from_dict(meta.to_dict()) == meta
    with pytest.raises(ValueError):
        PayoutMetadata.from_dict({"version": 2, "commission_ids": ["c1"]})


def test_commission_unpaid_flag():
    c = Commission(
        order_id="o1",
        vendor_id="v1",
        gross_amount=Decimal("100.00"),
        rate=Decimal("0.10"),
        amount=Decimal("10.00"),
        net_amount=Decimal("90.00"),
        rate_source=RateSource.SUBSCRIPTION_TIER,
    )
    assert c.is_unpaid
    c.status, c.payout_id = CommissionStatus.RESERVED, "p1"
    assert not c.is_unpaid
    assert CommissionBreakdown.from_dict(None) == CommissionBreakdown()
