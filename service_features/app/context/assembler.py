"""
Fail-closed assembly of the entitlement context.
"""

import asyncio
import time
from typing import Any, Dict, Optional, Tuple

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..rules.engine import AccessEvaluator
from ..rules.models import (
    ActorContext, ActorIdentity, EntitlementContext, FaultKind, Policy,
    PublicIdentity, Severity, TierLevel, Verdict
)
from ..rules.policies import DEFAULT_POLICIES, compute_entitlements, resolve_policies
from ..rules.tiers import map_tier
from .collaborators import (
    ANONYMOUS_ACTOR, AccessLogger, BillingLookup, IdentityProvider, PolicyRepository
)
from .subscription import has_active_subscription

POLICY_SOURCE_STORE = "store"
POLICY_SOURCE_DEFAULTS = "defaults"


class ContextAssembler:
    """Builds an ``EntitlementContext`` for the current actor.

    Identity and policies are loaded concurrently, every known feature is
    evaluated, and the result is plain serializable data. Collaborator
    failures degrade to the least-privileged outcome:

    - no authenticated actor: anonymous context over the loaded policies
    - tier lookup failed or found nothing: free tier, no live subscription
    - policy load failed: the shipped default policy table
    - anything else: anonymous context over the default policy table

    ``assemble`` never raises.
    """

    def __init__(
        self,
        policy_repository: PolicyRepository,
        identity_provider: IdentityProvider,
        access_logger: Optional[AccessLogger] = None,
        billing_lookup: Optional[BillingLookup] = None,
        policy_timeout: Optional[float] = 2.0,
        identity_timeout: Optional[float] = 2.0,
        billing_timeout: Optional[float] = 2.0,
        evaluator: Optional[AccessEvaluator] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.policy_repository = policy_repository
        self.identity_provider = identity_provider
        self.access_logger = access_logger
        self.billing_lookup = billing_lookup
        self.policy_timeout = policy_timeout
        self.identity_timeout = identity_timeout
        self.billing_timeout = billing_timeout
        self.evaluator = evaluator or AccessEvaluator()
        self.metrics = metrics
        self.logger = get_logger("features.assembler")

    async def assemble(self) -> EntitlementContext:
        """Assemble the entitlement context for the current actor."""
        start_time = time.time()

        try:
            context = await self._assemble()
        except Exception as e:
            self._report(FaultKind.ASSEMBLY_FAILED, Severity.ERROR, e)
            context = self._most_restrictive_context()
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "entitlement_assembly_duration_seconds",
                    time.time() - start_time
                )

        return context

    async def _assemble(self) -> EntitlementContext:
        (policies, policy_source, policy_fault), (identity, identity_fault) = await asyncio.gather(
            self._load_policies(),
            self._load_identity()
        )
        faults = [fault for fault in (policy_fault, identity_fault) if fault]

        if identity is None:
            actor = ActorContext.anonymous()
            user = None
        else:
            actor, tier_fault = await self._resolve_actor(identity)
            if tier_fault:
                faults.append(tier_fault)
            user = PublicIdentity(id=identity.id, email=identity.email)

        entitlements, verdicts = compute_entitlements(policies, actor, self.evaluator)
        self._record_verdicts(verdicts, actor)

        return EntitlementContext(
            user=user,
            tier=actor.tier,
            has_active_subscription=actor.has_active_subscription,
            entitlements=entitlements,
            policy_source=policy_source,
            faults=[fault.value for fault in faults]
        )

    async def _load_policies(self) -> Tuple[Dict[str, Policy], str, Optional[FaultKind]]:
        """Effective policies, falling back to the default table on any fault."""
        try:
            stored = await self._with_timeout(
                self.policy_repository.load_policies(),
                self.policy_timeout
            )
            policies = resolve_policies(stored)
        except Exception as e:
            self._report(FaultKind.POLICY_LOAD_FAILED, Severity.ERROR, e)
            return dict(DEFAULT_POLICIES), POLICY_SOURCE_DEFAULTS, FaultKind.POLICY_LOAD_FAILED

        if stored is None:
            return policies, POLICY_SOURCE_DEFAULTS, None
        return policies, POLICY_SOURCE_STORE, None

    async def _load_identity(self) -> Tuple[Optional[ActorIdentity], Optional[FaultKind]]:
        """Current actor, or None when anonymous or the provider failed."""
        try:
            identity = await self._with_timeout(
                self.identity_provider.current_actor(),
                self.identity_timeout
            )
        except Exception as e:
            self._report(FaultKind.IDENTITY_LOAD_FAILED, Severity.ERROR, e)
            return None, FaultKind.IDENTITY_LOAD_FAILED

        if identity is not None and not identity.id:
            self._report(
                FaultKind.IDENTITY_LOAD_FAILED,
                Severity.ERROR,
                metadata={"detail": "identity without id"}
            )
            return None, FaultKind.IDENTITY_LOAD_FAILED

        return identity, None

    async def _resolve_actor(self, identity: ActorIdentity) -> Tuple[ActorContext, Optional[FaultKind]]:
        """Tier and subscription liveness for an authenticated actor."""
        metadata = {"actor_id": identity.id}

        if self.billing_lookup is None:
            if identity.raw_tier is None:
                self._report(FaultKind.TIER_RECORD_MISSING, Severity.WARNING, metadata=metadata)
                return self._free_actor(identity), FaultKind.TIER_RECORD_MISSING
            return ActorContext(
                id=identity.id,
                tier=map_tier(identity.raw_tier),
                has_active_subscription=identity.has_active_subscription
            ), None

        try:
            record = await self._with_timeout(
                self.billing_lookup.get_subscription(identity.id),
                self.billing_timeout
            )
        except Exception as e:
            # Expected while a new account's billing record is provisioned
            self._report(FaultKind.TIER_LOOKUP_FAILED, Severity.WARNING, e, metadata)
            return self._free_actor(identity), FaultKind.TIER_LOOKUP_FAILED

        if record is None:
            self._report(FaultKind.TIER_RECORD_MISSING, Severity.WARNING, metadata=metadata)
            return self._free_actor(identity), FaultKind.TIER_RECORD_MISSING

        return ActorContext(
            id=identity.id,
            tier=map_tier(record.tier),
            has_active_subscription=has_active_subscription(record)
        ), None

    def _most_restrictive_context(self) -> EntitlementContext:
        """Anonymous context evaluated against the default policy table."""
        actor = ActorContext.anonymous()
        try:
            entitlements, verdicts = compute_entitlements(dict(DEFAULT_POLICIES), actor, self.evaluator)
        except Exception as e:
            self.logger.error("Default policy evaluation failed, denying all features", error=str(e))
            entitlements, verdicts = {key: False for key in DEFAULT_POLICIES}, {}

        self._record_verdicts(verdicts, actor)
        return EntitlementContext(
            user=None,
            tier=TierLevel.ANONYMOUS,
            has_active_subscription=False,
            entitlements=entitlements,
            policy_source=POLICY_SOURCE_DEFAULTS,
            faults=[FaultKind.ASSEMBLY_FAILED.value]
        )

    @staticmethod
    def _free_actor(identity: ActorIdentity) -> ActorContext:
        return ActorContext(id=identity.id, tier=TierLevel.FREE, has_active_subscription=False)

    @staticmethod
    async def _with_timeout(awaitable, timeout: Optional[float]):
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=timeout)

    def _record_verdicts(self, verdicts: Dict[str, Verdict], actor: ActorContext) -> None:
        if not self.access_logger:
            return

        actor_id = actor.id or ANONYMOUS_ACTOR
        for feature_key, verdict in verdicts.items():
            try:
                self.access_logger.record(feature_key, actor_id, verdict, {"tier": actor.tier.value})
            except Exception as e:
                self.logger.warning("Access logger failed to record verdict", feature_key=feature_key, error=str(e))

    def _report(
        self,
        fault: FaultKind,
        severity: Severity,
        error: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        if not self.access_logger:
            log = self.logger.error if severity is Severity.ERROR else self.logger.warning
            log("Entitlement context fault", fault=fault.value, error=str(error) if error else None, **(metadata or {}))
            return

        try:
            self.access_logger.report(fault, severity, error, metadata)
        except Exception as e:
            self.logger.warning("Access logger failed to report fault", fault=fault.value, error=str(e))
