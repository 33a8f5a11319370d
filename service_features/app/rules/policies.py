"""
Default feature policies and merging of stored overrides.

The default table is the fallback whenever the policy store is unavailable,
so it is never empty. Stored records override defaults field by field.
"""

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .models import Policy, PolicyRecord, TierLevel, ActorContext, Verdict
from .engine import AccessEvaluator


class FeatureKeys:
    """Feature identifiers shipped with the service."""
    # Master switches
    MONETIZATION = "monetization"
    AUTH = "auth"
    PAYMENTS = "payments"

    # Premium features
    EXCEL_EXPORT = "excel_export"
    EXCEL_IMPORT = "excel_import"
    PDF_IMPORT = "pdf_import"
    CLIPBOARD_IMPORT = "clipboard_import"

    # UI features
    RISK_CHART = "risk_chart"
    MULTI_GOAL_TRACKING = "multi_goal_tracking"


DEFAULT_POLICIES: Mapping[str, Policy] = MappingProxyType({
    FeatureKeys.MONETIZATION: Policy(enabled=False, min_tier=TierLevel.ANONYMOUS),
    FeatureKeys.AUTH: Policy(enabled=True, min_tier=TierLevel.ANONYMOUS),
    FeatureKeys.PAYMENTS: Policy(enabled=True, min_tier=TierLevel.ANONYMOUS),
    FeatureKeys.EXCEL_EXPORT: Policy(enabled=True, min_tier=TierLevel.FREE),
    FeatureKeys.EXCEL_IMPORT: Policy(enabled=True, min_tier=TierLevel.FREE),
    FeatureKeys.PDF_IMPORT: Policy(enabled=True, min_tier=TierLevel.PREMIUM),
    FeatureKeys.CLIPBOARD_IMPORT: Policy(enabled=True, min_tier=TierLevel.ANONYMOUS),
    FeatureKeys.RISK_CHART: Policy(enabled=True, min_tier=TierLevel.PREMIUM),
    FeatureKeys.MULTI_GOAL_TRACKING: Policy(enabled=True, min_tier=TierLevel.FREE),
})

# Base for stored features the default table does not know about
UNKNOWN_FEATURE_POLICY = Policy(enabled=False, min_tier=TierLevel.PREMIUM)

_SET_FIELDS = ("allowlist", "denylist", "beta_users")


def merge_with_default(default: Policy, override: PolicyRecord) -> Policy:
    """Overlay the fields explicitly set on ``override`` onto ``default``."""
    values = {
        "enabled": default.enabled,
        "min_tier": default.min_tier,
        "rollout_percentage": default.rollout_percentage,
        "allowlist": default.allowlist,
        "denylist": default.denylist,
        "beta_users": default.beta_users,
    }

    for name in override.model_fields_set:
        value = getattr(override, name)
        if name in _SET_FIELDS:
            values[name] = frozenset(value or ())
        elif name in ("enabled", "min_tier") and value is None:
            # Non-nullable on Policy; an explicit null keeps the default
            continue
        else:
            values[name] = value

    return Policy(**values)


def resolve_policies(stored: Optional[Mapping[str, Any]]) -> Dict[str, Policy]:
    """Effective policy for every known feature key.

    Values may be ``PolicyRecord`` instances or plain mappings; an invalid
    record raises pydantic's ``ValidationError``.
    """
    resolved = dict(DEFAULT_POLICIES)
    if not stored:
        return resolved

    for feature_key, record in stored.items():
        if not isinstance(record, PolicyRecord):
            record = PolicyRecord.model_validate(record)
        base = DEFAULT_POLICIES.get(feature_key, UNKNOWN_FEATURE_POLICY)
        resolved[feature_key] = merge_with_default(base, record)

    return resolved


def known_feature_keys(policies: Mapping[str, Policy]) -> List[str]:
    """Default-table keys in table order, then any extra keys sorted."""
    extra = sorted(key for key in policies if key not in DEFAULT_POLICIES)
    return list(DEFAULT_POLICIES) + extra


def compute_entitlements(
    policies: Mapping[str, Policy],
    actor: ActorContext,
    evaluator: Optional[AccessEvaluator] = None
) -> Tuple[Dict[str, bool], Dict[str, Verdict]]:
    """Evaluate every known feature for ``actor``.

    Returns the entitlement map together with the verdict behind each entry.
    A key without a policy is denied.
    """
    evaluator = evaluator or AccessEvaluator()
    entitlements: Dict[str, bool] = {}
    verdicts: Dict[str, Verdict] = {}

    for feature_key in known_feature_keys(policies):
        policy = policies.get(feature_key)
        if policy is None:
            entitlements[feature_key] = False
            continue

        verdict = evaluator.evaluate(feature_key, policy, actor)
        verdicts[feature_key] = verdict
        entitlements[feature_key] = verdict.allowed

    return entitlements, verdicts
