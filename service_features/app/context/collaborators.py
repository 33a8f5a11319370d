"""
Collaborator contracts consumed by the context assembler.

The assembler only depends on these protocols; concrete storage, identity and
billing integrations live outside the core.
"""

from typing import Any, Dict, Optional, Protocol, runtime_checkable

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..rules.models import (
    ActorIdentity, FaultKind, PolicyRecord, Severity, SubscriptionRecord, Verdict
)

ANONYMOUS_ACTOR = "anonymous"


@runtime_checkable
class PolicyRepository(Protocol):
    """Source of stored policy records.

    Raises ``PolicyStoreUnavailable`` on any transport or storage fault and
    never returns partial results.
    """

    async def load_policies(self) -> Dict[str, PolicyRecord]:
        ...


@runtime_checkable
class IdentityProvider(Protocol):
    """Current authenticated actor, or None when the request is anonymous."""

    async def current_actor(self) -> Optional[ActorIdentity]:
        ...


@runtime_checkable
class BillingLookup(Protocol):
    """Billing record for an actor, or None when no record exists yet."""

    async def get_subscription(self, actor_id: str) -> Optional[SubscriptionRecord]:
        ...


@runtime_checkable
class AccessLogger(Protocol):
    """Audit sink for verdicts and absorbed faults."""

    def record(
        self,
        feature_key: str,
        actor_id: str,
        verdict: Verdict,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        ...

    def report(
        self,
        fault: FaultKind,
        severity: Severity,
        error: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        ...


class StructlogAccessLogger:
    """Access logger writing structured log events and Prometheus counters."""

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.logger = get_logger("features.access")
        self.metrics = metrics

    def record(
        self,
        feature_key: str,
        actor_id: str,
        verdict: Verdict,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        reason = verdict.reason.value if verdict.reason else None
        fields = dict(metadata or {})
        fields.update(feature_key=feature_key, actor_id=actor_id, allowed=verdict.allowed, reason=reason)

        if verdict.allowed:
            self.logger.info("Feature access allowed", **fields)
        else:
            self.logger.warning("Feature access denied", **fields)

        if self.metrics:
            self.metrics.increment_counter(
                "entitlement_checks_total",
                decision="allow" if verdict.allowed else "deny",
                reason=reason or "none"
            )

    def report(
        self,
        fault: FaultKind,
        severity: Severity,
        error: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        fields = dict(metadata or {})
        fields["fault"] = fault.value
        if error is not None:
            fields["error"] = str(error) or type(error).__name__
            fields["error_type"] = type(error).__name__

        if severity is Severity.ERROR:
            self.logger.error("Entitlement context fault", **fields)
        else:
            self.logger.warning("Entitlement context fault", **fields)

        if self.metrics:
            self.metrics.increment_counter(
                "entitlement_faults_total",
                fault=fault.value,
                severity=severity.value
            )
