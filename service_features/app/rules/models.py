"""
Data models for feature access evaluation.

Internal evaluation values (policies, actor contexts, verdicts) are frozen
dataclasses. Anything that crosses a storage or process boundary (stored
policy records, the assembled entitlement context) is a pydantic model.
"""

from typing import Dict, Any, Optional, List, FrozenSet
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class TierLevel(str, Enum):
    """Ordered access levels."""
    ANONYMOUS = "anonymous"
    FREE = "free"
    PREMIUM = "premium"

    @property
    def rank(self) -> int:
        return _TIER_RANKS[self]


_TIER_RANKS = {
    TierLevel.ANONYMOUS: 0,
    TierLevel.FREE: 1,
    TierLevel.PREMIUM: 2,
}


class ReasonCode(str, Enum):
    """Why an evaluation denied access."""
    FEATURE_DISABLED = "feature_disabled"
    DENYLISTED = "denylisted"
    TIER_RESTRICTION = "tier_restriction"
    UNAUTHENTICATED = "unauthenticated"
    NO_ACTIVE_SUBSCRIPTION = "no_active_subscription"
    ROLLOUT_NOT_ELIGIBLE = "rollout_not_eligible"


class FaultKind(str, Enum):
    """Infrastructure faults absorbed at the assembly boundary."""
    POLICY_LOAD_FAILED = "policy_load_failed"
    IDENTITY_LOAD_FAILED = "identity_load_failed"
    TIER_LOOKUP_FAILED = "tier_lookup_failed"
    TIER_RECORD_MISSING = "tier_record_missing"
    ASSEMBLY_FAILED = "assembly_failed"


class Severity(str, Enum):
    """Severity of an absorbed fault."""
    WARNING = "warning"
    ERROR = "error"


class SubscriptionStatus(str, Enum):
    """Billing subscription status, aligned with the payment provider."""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"


@dataclass(frozen=True)
class Policy:
    """Configuration controlling one feature's availability."""
    enabled: bool = False
    min_tier: TierLevel = TierLevel.PREMIUM
    rollout_percentage: Optional[int] = None
    allowlist: FrozenSet[str] = frozenset()
    denylist: FrozenSet[str] = frozenset()
    beta_users: FrozenSet[str] = frozenset()

    def __post_init__(self):
        if self.rollout_percentage is not None and not 0 <= self.rollout_percentage <= 100:
            raise ValueError(f"rollout_percentage out of range: {self.rollout_percentage}")


@dataclass(frozen=True)
class ActorContext:
    """Resolved actor as seen by the evaluator."""
    id: Optional[str] = None
    tier: TierLevel = TierLevel.ANONYMOUS
    has_active_subscription: bool = False

    @property
    def is_anonymous(self) -> bool:
        return self.id is None

    @classmethod
    def anonymous(cls) -> "ActorContext":
        return cls()


@dataclass(frozen=True)
class Verdict:
    """Outcome of one (feature, actor) evaluation."""
    allowed: bool
    reason: Optional[ReasonCode] = None

    def __post_init__(self):
        if self.allowed and self.reason is not None:
            raise ValueError("an allowing verdict carries no reason")
        if not self.allowed and self.reason is None:
            raise ValueError("a denying verdict requires a reason")

    @classmethod
    def allow(cls) -> "Verdict":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: ReasonCode) -> "Verdict":
        return cls(allowed=False, reason=reason)


@dataclass(frozen=True)
class ActorIdentity:
    """Authenticated actor as reported by the identity provider."""
    id: str
    raw_tier: Optional[str] = None
    has_active_subscription: bool = False
    email: Optional[str] = None


@dataclass(frozen=True)
class SubscriptionRecord:
    """Billing record for an actor."""
    tier: Optional[str]
    status: Optional[str] = None
    cancel_at_period_end: bool = False
    current_period_end: Optional[datetime] = None


class PolicyRecord(BaseModel):
    """Stored policy override for one feature key.

    Only the fields explicitly set on a record override the default policy,
    see ``policies.merge_with_default``.
    """
    enabled: Optional[bool] = None
    min_tier: Optional[TierLevel] = None
    rollout_percentage: Optional[int] = Field(None, ge=0, le=100)
    allowlist: Optional[List[str]] = None
    denylist: Optional[List[str]] = None
    beta_users: Optional[List[str]] = None

    @field_validator("allowlist", "denylist", "beta_users", mode="before")
    @classmethod
    def _drop_empty_ids(cls, value):
        if value is None:
            return value
        return [str(item) for item in value if item]


class PublicIdentity(BaseModel):
    """Identity fields safe to hand to a client."""
    id: str
    email: Optional[str] = None


class EntitlementMap(dict):
    """Feature key to entitlement flag; read-only once built."""

    def _read_only(self, *args, **kwargs):
        raise TypeError("EntitlementMap is read-only")

    __setitem__ = __delitem__ = __ior__ = _read_only
    clear = pop = popitem = setdefault = update = _read_only

    def __reduce__(self):
        return (self.__class__, (dict(self),))


class EntitlementContext(BaseModel):
    """Serializable result of context assembly."""
    user: Optional[PublicIdentity] = None
    tier: TierLevel = TierLevel.ANONYMOUS
    has_active_subscription: bool = False
    entitlements: Dict[str, bool] = Field(default_factory=EntitlementMap)
    policy_source: str = "defaults"
    faults: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @field_validator("entitlements")
    @classmethod
    def _freeze_entitlements(cls, value):
        return EntitlementMap(value)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def is_entitled(self, feature_key: str) -> bool:
        """Unknown features are never entitled."""
        return self.entitlements.get(feature_key, False)

    def to_payload(self) -> Dict[str, Any]:
        """Plain JSON-compatible data for hydration across a process boundary."""
        return self.model_dump(mode="json")
