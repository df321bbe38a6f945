"""
Closed set of plan features that can gate an operation.

Each feature maps to exactly one boolean plan flag. Unknown names are
rejected when a check is built (UnknownFeatureError), never passed through.
"""

from enum import Enum
from typing import Union

from treniko.entitlements.errors import UnknownFeatureError


class PlanFeature(str, Enum):
    TRAINING_LOGS = "training_logs"
    ANALYTICS = "analytics"
    EXPORT = "export"
    API_ACCESS = "api_access"
    CUSTOM_BRANDING = "custom_branding"
    PRIORITY_SUPPORT = "priority_support"

    @property
    def plan_flag(self) -> str:
        """Attribute name on SubscriptionPlan and EntitlementSnapshot."""
        return f"has_{self.value}"

    def is_enabled_on(self, holder) -> bool:
        return bool(getattr(holder, self.plan_flag, False))


def parse_feature(feature: Union[str, PlanFeature]) -> PlanFeature:
    """
    Resolve a feature name.

    Raises:
        UnknownFeatureError: name is not a PlanFeature
    """
    if isinstance(feature, PlanFeature):
        return feature
    try:
        return PlanFeature(feature)
    except ValueError:
        raise UnknownFeatureError(str(feature)) from None
