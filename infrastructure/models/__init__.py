"""Infrastructure models package exports."""
from .base import Base, metadata
from .commission import CommissionModel
from .commission_rate_rule import CommissionRateRuleModel
from .payout import PayoutModel
from .vendor_payout_profile import VendorPayoutProfileModel

__all__ = [
    "Base",
    "metadata",
    "CommissionModel",
    "CommissionRateRuleModel",
    "PayoutModel",
    "VendorPayoutProfileModel",
]
