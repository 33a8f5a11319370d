"""
Rules engine package.

Defines the policy model and the evaluation engine that decides whether an
actor may use a feature. Evaluation is pure and synchronous: a fixed-order
precedence chain returning an allow/deny verdict with a machine-readable
reason.

Modules of interest:
- models: Tiers, policies, actor contexts, verdicts and the entitlement context.
- tiers: Billing tier to access level mapping.
- rollout: Consistent hashing for percentage rollouts.
- engine: The precedence chain.
- policies: Default policy table and merging of stored overrides.
"""

from .models import (
    TierLevel, ReasonCode, Policy, PolicyRecord, ActorContext, ActorIdentity,
    Verdict, EntitlementContext
)
from .engine import AccessEvaluator, evaluate
from .tiers import map_tier
from .rollout import rollout_hash
from .policies import DEFAULT_POLICIES, FeatureKeys, merge_with_default, resolve_policies
