"""
Per-feature access checks for transport layers.

A guard evaluates a single feature for an already resolved actor. Denials
map to status codes so a caller can pick 401, 403 or 404 without re-deriving
the decision: disabled and rollout-gated features answer 404 so their
existence is not revealed.
"""

from typing import Any, Dict, Mapping, Optional

from shared.logging import get_logger
from .context.collaborators import ANONYMOUS_ACTOR, AccessLogger
from .errors import FeatureAccessDenied
from .rules.engine import AccessEvaluator
from .rules.models import ActorContext, Policy, ReasonCode, Verdict
from .rules.policies import DEFAULT_POLICIES, UNKNOWN_FEATURE_POLICY

REASON_STATUS_CODES: Dict[ReasonCode, int] = {
    ReasonCode.UNAUTHENTICATED: 401,
    ReasonCode.TIER_RESTRICTION: 403,
    ReasonCode.NO_ACTIVE_SUBSCRIPTION: 403,
    ReasonCode.DENYLISTED: 403,
    ReasonCode.FEATURE_DISABLED: 404,
    ReasonCode.ROLLOUT_NOT_ELIGIBLE: 404,
}

REASON_MESSAGES: Dict[ReasonCode, str] = {
    ReasonCode.UNAUTHENTICATED: "Authentication required",
    ReasonCode.TIER_RESTRICTION: "Upgrade required to access this feature",
    ReasonCode.NO_ACTIVE_SUBSCRIPTION: "Active subscription required",
    ReasonCode.DENYLISTED: "Access denied",
    ReasonCode.FEATURE_DISABLED: "Feature not available",
    ReasonCode.ROLLOUT_NOT_ELIGIBLE: "Feature not available",
}


def status_for_reason(reason: ReasonCode) -> int:
    return REASON_STATUS_CODES.get(reason, 403)


def message_for_reason(reason: ReasonCode) -> str:
    return REASON_MESSAGES.get(reason, "Access denied")


class FeatureGuard:
    """Checks one feature at a time against resolved policies."""

    def __init__(
        self,
        access_logger: Optional[AccessLogger] = None,
        evaluator: Optional[AccessEvaluator] = None
    ):
        self.access_logger = access_logger
        self.evaluator = evaluator or AccessEvaluator()
        self.logger = get_logger("features.guard")

    def policy_for(self, feature_key: str, policies: Optional[Mapping[str, Policy]] = None) -> Policy:
        """Resolved policy for a key; unknown keys get a disabled policy."""
        if policies and feature_key in policies:
            return policies[feature_key]
        return DEFAULT_POLICIES.get(feature_key, UNKNOWN_FEATURE_POLICY)

    def check(
        self,
        feature_key: str,
        actor: ActorContext,
        policies: Optional[Mapping[str, Policy]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Verdict:
        """Evaluate ``feature_key`` for ``actor`` and record the verdict."""
        verdict = self.evaluator.evaluate(feature_key, self.policy_for(feature_key, policies), actor)

        if self.access_logger:
            fields = {"tier": actor.tier.value}
            fields.update(metadata or {})
            try:
                self.access_logger.record(feature_key, actor.id or ANONYMOUS_ACTOR, verdict, fields)
            except Exception as e:
                self.logger.warning("Access logger failed to record verdict", feature_key=feature_key, error=str(e))

        return verdict

    def require(
        self,
        feature_key: str,
        actor: ActorContext,
        policies: Optional[Mapping[str, Policy]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ActorContext:
        """Return ``actor`` if allowed, otherwise raise ``FeatureAccessDenied``."""
        verdict = self.check(feature_key, actor, policies, metadata)
        if verdict.allowed:
            return actor

        raise FeatureAccessDenied(
            feature_key=feature_key,
            reason=verdict.reason,
            status_code=status_for_reason(verdict.reason),
            message=message_for_reason(verdict.reason)
        )


_default_guard = FeatureGuard()


def check_feature_access(
    feature_key: str,
    actor: ActorContext,
    policies: Optional[Mapping[str, Policy]] = None
) -> Verdict:
    return _default_guard.check(feature_key, actor, policies)


def assert_feature_access(
    feature_key: str,
    actor: ActorContext,
    policies: Optional[Mapping[str, Policy]] = None
) -> ActorContext:
    return _default_guard.require(feature_key, actor, policies)
