"""
Unit tests for the access evaluator.
"""

import pytest
from itertools import product

from service_features.app.rules.engine import AccessEvaluator, evaluate
from service_features.app.rules.models import (
    Policy, ActorContext, Verdict, ReasonCode, TierLevel
)
from service_features.app.rules.rollout import rollout_hash


class TestAccessEvaluator:
    """Test cases for AccessEvaluator."""

    @pytest.fixture
    def evaluator(self):
        """Create AccessEvaluator instance."""
        return AccessEvaluator()

    @pytest.fixture
    def premium_actor(self):
        return ActorContext(id="u1", tier=TierLevel.PREMIUM, has_active_subscription=True)

    @pytest.fixture
    def free_actor(self):
        return ActorContext(id="u2", tier=TierLevel.FREE, has_active_subscription=False)

    @pytest.fixture
    def anonymous_actor(self):
        return ActorContext.anonymous()

    def test_rollout_zero_denies_premium_actor(self, evaluator, premium_actor):
        """Test a 0% rollout denies even an entitled premium actor."""
        policy = Policy(enabled=True, min_tier=TierLevel.PREMIUM, rollout_percentage=0)

        verdict = evaluator.evaluate("pdf_import", policy, premium_actor)

        assert verdict == Verdict(allowed=False, reason=ReasonCode.ROLLOUT_NOT_ELIGIBLE)

    def test_allowlist_bypasses_rollout(self, evaluator, premium_actor):
        """Test an allowlisted actor skips the rollout gate."""
        policy = Policy(
            enabled=True,
            min_tier=TierLevel.PREMIUM,
            rollout_percentage=0,
            allowlist=frozenset({"u1"})
        )

        verdict = evaluator.evaluate("pdf_import", policy, premium_actor)

        assert verdict.allowed is True
        assert verdict.reason is None

    def test_anonymous_on_free_feature_is_unauthenticated(self, evaluator, anonymous_actor):
        """Test anonymous actors get unauthenticated rather than tier_restriction."""
        policy = Policy(enabled=True, min_tier=TierLevel.FREE)

        verdict = evaluator.evaluate("excel_export", policy, anonymous_actor)

        assert verdict == Verdict.deny(ReasonCode.UNAUTHENTICATED)

    def test_anonymous_on_premium_feature_is_unauthenticated(self, evaluator, anonymous_actor):
        """Test the 401 hint also applies to premium features."""
        policy = Policy(enabled=True, min_tier=TierLevel.PREMIUM)

        verdict = evaluator.evaluate("pdf_import", policy, anonymous_actor)

        assert verdict.reason is ReasonCode.UNAUTHENTICATED

    def test_free_actor_on_premium_feature_is_tier_restricted(self, evaluator, free_actor):
        """Test a signed-in actor below the minimum tier gets tier_restriction."""
        policy = Policy(enabled=True, min_tier=TierLevel.PREMIUM)

        verdict = evaluator.evaluate("pdf_import", policy, free_actor)

        assert verdict == Verdict.deny(ReasonCode.TIER_RESTRICTION)

    def test_lapsed_premium_subscription_is_denied(self, evaluator):
        """Test a nominally premium actor without a live subscription is denied."""
        actor = ActorContext(id="u3", tier=TierLevel.PREMIUM, has_active_subscription=False)
        policy = Policy(enabled=True, min_tier=TierLevel.PREMIUM)

        verdict = evaluator.evaluate("risk_chart", policy, actor)

        assert verdict == Verdict.deny(ReasonCode.NO_ACTIVE_SUBSCRIPTION)

    def test_subscription_only_checked_for_premium_features(self, evaluator, free_actor):
        """Test free-tier features do not require a subscription."""
        policy = Policy(enabled=True, min_tier=TierLevel.FREE)

        assert evaluator.evaluate("excel_export", policy, free_actor).allowed is True

    def test_beta_user_bypasses_tier(self, evaluator, free_actor):
        """Test beta users below the minimum tier are allowed."""
        policy = Policy(enabled=True, min_tier=TierLevel.PREMIUM, beta_users=frozenset({"u2"}))

        assert evaluator.evaluate("pdf_import", policy, free_actor) == Verdict.allow()

    def test_allowlist_bypasses_tier_and_subscription(self, evaluator, free_actor):
        """Test allowlisted actors skip the tier and subscription checks."""
        policy = Policy(enabled=True, min_tier=TierLevel.PREMIUM, allowlist=frozenset({"u2"}))

        assert evaluator.evaluate("pdf_import", policy, free_actor).allowed is True

    def test_denylist_outranks_allowlist_and_beta(self, evaluator, premium_actor):
        """Test an actor on every list is denied."""
        policy = Policy(
            enabled=True,
            min_tier=TierLevel.ANONYMOUS,
            allowlist=frozenset({"u1"}),
            denylist=frozenset({"u1"}),
            beta_users=frozenset({"u1"})
        )

        verdict = evaluator.evaluate("auth", policy, premium_actor)

        assert verdict == Verdict.deny(ReasonCode.DENYLISTED)

    def test_lists_ignore_anonymous_actors(self, evaluator, anonymous_actor):
        """Test list checks need an identity."""
        policy = Policy(
            enabled=True,
            min_tier=TierLevel.FREE,
            allowlist=frozenset({"anonymous"}),
            beta_users=frozenset({"anonymous"})
        )

        verdict = evaluator.evaluate("excel_export", policy, anonymous_actor)

        assert verdict.reason is ReasonCode.UNAUTHENTICATED

    @pytest.mark.parametrize("rollout", [None, 0, 1, 50, 99, 100])
    def test_anonymous_ignores_rollout(self, evaluator, anonymous_actor, rollout):
        """Test anonymous actors on anonymous features pass regardless of rollout."""
        policy = Policy(enabled=True, min_tier=TierLevel.ANONYMOUS, rollout_percentage=rollout)

        assert evaluator.evaluate("clipboard_import", policy, anonymous_actor).allowed is True

    def test_rollout_uses_actor_and_feature_bucket(self, evaluator):
        """Test the rollout gate compares the bucket against the percentage."""
        actor = ActorContext(id="u1", tier=TierLevel.FREE)
        bucket = rollout_hash("u1", "excel_export")

        just_in = Policy(enabled=True, min_tier=TierLevel.FREE, rollout_percentage=bucket + 1)
        just_out = Policy(enabled=True, min_tier=TierLevel.FREE, rollout_percentage=bucket)

        assert evaluator.evaluate("excel_export", just_in, actor).allowed is True
        assert evaluator.evaluate("excel_export", just_out, actor) == Verdict.deny(
            ReasonCode.ROLLOUT_NOT_ELIGIBLE
        )

    def test_full_rollout_always_passes(self, evaluator, free_actor):
        """Test a 100% rollout is unconditional."""
        policy = Policy(enabled=True, min_tier=TierLevel.FREE, rollout_percentage=100)

        assert evaluator.evaluate("excel_export", policy, free_actor).allowed is True

    def test_default_allow(self, evaluator, free_actor):
        """Test a policy with no restrictions allows."""
        policy = Policy(enabled=True, min_tier=TierLevel.ANONYMOUS)

        assert evaluator.evaluate("auth", policy, free_actor) == Verdict.allow()

    def test_module_level_evaluate(self, premium_actor):
        """Test the module-level helper matches the evaluator."""
        policy = Policy(enabled=True, min_tier=TierLevel.PREMIUM)

        assert evaluate("pdf_import", policy, premium_actor) == Verdict.allow()

    def test_evaluation_does_not_mutate_inputs(self, evaluator, premium_actor):
        """Test policy and actor are left untouched."""
        policy = Policy(enabled=True, min_tier=TierLevel.FREE, denylist=frozenset({"x"}))
        before = (policy, premium_actor)

        evaluator.evaluate("excel_export", policy, premium_actor)

        assert (policy, premium_actor) == before


class TestKillSwitch:
    """The kill switch beats every other setting."""

    @pytest.mark.parametrize(
        "min_tier,on_allowlist,on_beta,rollout,actor",
        list(product(
            list(TierLevel),
            [False, True],
            [False, True],
            [None, 0, 100],
            [
                ActorContext(id="u1", tier=TierLevel.PREMIUM, has_active_subscription=True),
                ActorContext(id="u1", tier=TierLevel.FREE),
                ActorContext.anonymous(),
            ]
        ))
    )
    def test_disabled_always_denies(self, min_tier, on_allowlist, on_beta, rollout, actor):
        """Test disabled features deny with feature_disabled."""
        policy = Policy(
            enabled=False,
            min_tier=min_tier,
            rollout_percentage=rollout,
            allowlist=frozenset({"u1"}) if on_allowlist else frozenset(),
            beta_users=frozenset({"u1"}) if on_beta else frozenset()
        )

        verdict = evaluate("any_feature", policy, actor)

        assert verdict == Verdict.deny(ReasonCode.FEATURE_DISABLED)


class TestModels:
    """Invariants of the evaluation value types."""

    def test_verdict_reason_invariants(self):
        """Test allowing verdicts have no reason and denying ones always do."""
        with pytest.raises(ValueError):
            Verdict(allowed=True, reason=ReasonCode.DENYLISTED)
        with pytest.raises(ValueError):
            Verdict(allowed=False)

    @pytest.mark.parametrize("rollout", [-1, 101])
    def test_policy_rejects_out_of_range_rollout(self, rollout):
        """Test rollout percentages outside 0..100 are rejected."""
        with pytest.raises(ValueError):
            Policy(enabled=True, rollout_percentage=rollout)

    def test_default_policy_is_closed(self):
        """Test a bare Policy is disabled and premium-only."""
        policy = Policy()

        assert policy.enabled is False
        assert policy.min_tier is TierLevel.PREMIUM
