"""
Plan tiers and the feature catalog.

Feature access is inherited: a plan grants every feature whose minimum plan
is at or below it. Unknown features require the highest tier.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PlanTier(str, Enum):
    """
    Subscription tiers, ordered from lowest to highest.
    """

    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


PLAN_ORDER: tuple[PlanTier, ...] = (PlanTier.FREE, PlanTier.PRO, PlanTier.ENTERPRISE)
PLAN_RANK: dict[PlanTier, int] = {plan: rank for rank, plan in enumerate(PLAN_ORDER)}


class Feature(str, Enum):
    """
    Capabilities gated by plan tier.
    """

    BASIC_DASHBOARD = "basic-dashboard"
    ADVANCED_ANALYTICS = "advanced-analytics"
    AUDIT_LOGS = "audit-logs"
    DATA_EXPORT = "data-export"
    WEBHOOKS = "webhooks"
    API_ACCESS = "api-access"
    PRIORITY_SUPPORT = "priority-support"
    CUSTOM_BRANDING = "custom-branding"
    SSO = "sso"
    CUSTOM_INTEGRATIONS = "custom-integrations"


@dataclass(frozen=True)
class FeatureDefinition:
    feature: Feature
    name: str
    description: str
    required_plan: PlanTier
    enabled: bool = True
    beta: bool = False


FEATURES: dict[Feature, FeatureDefinition] = {
    definition.feature: definition
    for definition in (
        FeatureDefinition(
            Feature.BASIC_DASHBOARD,
            "Basic Dashboard",
            "Access to the basic dashboard",
            PlanTier.FREE,
        ),
        FeatureDefinition(
            Feature.ADVANCED_ANALYTICS,
            "Advanced Analytics",
            "Detailed analytics and reporting",
            PlanTier.PRO,
        ),
        FeatureDefinition(
            Feature.AUDIT_LOGS,
            "Audit Logs",
            "Track all workspace activity",
            PlanTier.PRO,
        ),
        FeatureDefinition(
            Feature.DATA_EXPORT,
            "Data Export",
            "Export workspace data in multiple formats",
            PlanTier.PRO,
        ),
        FeatureDefinition(
            Feature.WEBHOOKS,
            "Webhooks",
            "Send events to external endpoints",
            PlanTier.PRO,
            beta=True,
        ),
        FeatureDefinition(
            Feature.API_ACCESS,
            "API Access",
            "Programmatic access through the REST API",
            PlanTier.ENTERPRISE,
        ),
        FeatureDefinition(
            Feature.PRIORITY_SUPPORT,
            "Priority Support",
            "24/7 priority customer support",
            PlanTier.ENTERPRISE,
        ),
        FeatureDefinition(
            Feature.CUSTOM_BRANDING,
            "Custom Branding",
            "Use your own logo and colors",
            PlanTier.ENTERPRISE,
        ),
        FeatureDefinition(
            Feature.SSO,
            "Single Sign-On",
            "SAML/OIDC single sign-on",
            PlanTier.ENTERPRISE,
        ),
        FeatureDefinition(
            Feature.CUSTOM_INTEGRATIONS,
            "Custom Integrations",
            "Build custom integrations with third-party tools",
            PlanTier.ENTERPRISE,
        ),
    )
}


def _inherited_features() -> dict[PlanTier, frozenset[Feature]]:
    granted: set[Feature] = set()
    result: dict[PlanTier, frozenset[Feature]] = {}
    for plan in PLAN_ORDER:
        granted |= {
            feature
            for feature, definition in FEATURES.items()
            if definition.required_plan == plan
        }
        result[plan] = frozenset(granted)
    return result


PLAN_FEATURES: dict[PlanTier, frozenset[Feature]] = _inherited_features()


def normalize_plan(plan: str | PlanTier | None) -> PlanTier:
    """
    Normalize a stored plan id to a ``PlanTier``.

    Unknown or missing values degrade to ``PlanTier.FREE``.
    """

    if isinstance(plan, PlanTier):
        return plan
    if plan is None:
        return PlanTier.FREE
    try:
        return PlanTier(str(plan).strip().lower())
    except ValueError:
        return PlanTier.FREE


def parse_feature(feature: str | Feature | None) -> Feature | None:
    if isinstance(feature, Feature):
        return feature
    if feature is None:
        return None
    try:
        return Feature(str(feature).strip().lower())
    except ValueError:
        return None


def get_plan_features(plan: str | PlanTier | None) -> frozenset[Feature]:
    """Return the enabled features granted to ``plan``, inheritance included."""

    return frozenset(
        feature
        for feature in PLAN_FEATURES[normalize_plan(plan)]
        if FEATURES[feature].enabled
    )


def plan_includes_feature(plan: str | PlanTier | None, feature: str | Feature | None) -> bool:
    """
    Check if ``plan`` grants ``feature``.

    Disabled features are never granted. Unknown features are never granted.
    """

    parsed = parse_feature(feature)
    if parsed is None:
        return False
    if not FEATURES[parsed].enabled:
        return False
    return parsed in PLAN_FEATURES[normalize_plan(plan)]


def required_plan_for(feature: str | Feature | None) -> PlanTier:
    """Minimum plan for ``feature``; unknown features map to ``ENTERPRISE``."""

    parsed = parse_feature(feature)
    if parsed is None:
        return PlanTier.ENTERPRISE
    return FEATURES[parsed].required_plan


def plan_at_least(plan: str | PlanTier | None, minimum: str | PlanTier) -> bool:
    """
    Compare tiers. An unparseable ``minimum`` is treated as ``ENTERPRISE``.
    """

    try:
        minimum_plan = minimum if isinstance(minimum, PlanTier) else PlanTier(str(minimum).lower())
    except ValueError:
        minimum_plan = PlanTier.ENTERPRISE
    return PLAN_RANK[normalize_plan(plan)] >= PLAN_RANK[minimum_plan]
