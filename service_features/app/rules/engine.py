"""
Access evaluation engine for feature policies.
"""

from typing import Optional

from shared.logging import get_logger
from .models import Policy, ActorContext, Verdict, ReasonCode, TierLevel
from .rollout import rollout_hash
from .tiers import meets_tier


class AccessEvaluator:
    """Fixed-order precedence chain deciding one (feature, actor) pair.

    The checks run in this order and the first one that decides wins:

    1. kill switch (``enabled``)
    2. denylist
    3. allowlist
    4. beta users
    5. minimum tier
    6. subscription liveness for premium features
    7. rollout percentage

    Steps 2-4 and 7 need a stable identity and are skipped for anonymous
    actors, so a feature cannot be rolled out gradually to anonymous traffic.
    """

    def __init__(self):
        self.logger = get_logger("features.evaluator")

    def evaluate(self, feature_key: str, policy: Policy, actor: ActorContext) -> Verdict:
        """Evaluate ``policy`` for ``actor`` on ``feature_key``."""
        if not policy.enabled:
            return Verdict.deny(ReasonCode.FEATURE_DISABLED)

        if not actor.is_anonymous:
            if actor.id in policy.denylist:
                return Verdict.deny(ReasonCode.DENYLISTED)

            if actor.id in policy.allowlist or actor.id in policy.beta_users:
                return Verdict.allow()

        tier_denial = self._check_tier(policy, actor)
        if tier_denial is not None:
            return Verdict.deny(tier_denial)

        if policy.min_tier is TierLevel.PREMIUM and not actor.has_active_subscription:
            return Verdict.deny(ReasonCode.NO_ACTIVE_SUBSCRIPTION)

        if self._outside_rollout(feature_key, policy, actor):
            return Verdict.deny(ReasonCode.ROLLOUT_NOT_ELIGIBLE)

        return Verdict.allow()

    def _check_tier(self, policy: Policy, actor: ActorContext) -> Optional[ReasonCode]:
        """Reason for a tier denial, or None if the actor's tier suffices."""
        if meets_tier(actor.tier, policy.min_tier):
            return None

        # Lets callers answer 401 rather than 403
        if actor.tier is TierLevel.ANONYMOUS and policy.min_tier.rank >= TierLevel.FREE.rank:
            return ReasonCode.UNAUTHENTICATED

        return ReasonCode.TIER_RESTRICTION

    def _outside_rollout(self, feature_key: str, policy: Policy, actor: ActorContext) -> bool:
        percentage = policy.rollout_percentage
        if actor.is_anonymous or percentage is None or percentage >= 100:
            return False

        bucket = rollout_hash(actor.id, feature_key)
        self.logger.debug(
            "Rollout bucket computed",
            feature_key=feature_key,
            bucket=bucket,
            rollout_percentage=percentage
        )
        return bucket >= percentage


_default_evaluator = AccessEvaluator()


def evaluate(feature_key: str, policy: Policy, actor: ActorContext) -> Verdict:
    """Evaluate with the module-level evaluator."""
    return _default_evaluator.evaluate(feature_key, policy, actor)
