"""
Errors raised by the feature access service.

Verdict reasons are not errors; these cover collaborator faults and the
raise-on-deny guard used by transport layers.
"""

from typing import Any, Dict, Optional

from shared.errors import AuthorizationError, ExternalServiceError
from .rules.models import ReasonCode


class PolicyStoreUnavailable(ExternalServiceError):
    """The policy store could not be read."""

    def __init__(self, message: str = "Policy store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("policy_store", message, details)


class IdentityUnavailable(ExternalServiceError):
    """The identity provider failed (as opposed to reporting no actor)."""

    def __init__(self, message: str = "Identity provider unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("identity_provider", message, details)


class FeatureAccessDenied(AuthorizationError):
    """Access to a feature was denied."""

    def __init__(
        self,
        feature_key: str,
        reason: ReasonCode,
        status_code: int,
        message: str
    ):
        super().__init__(
            message,
            {"feature_key": feature_key, "reason": reason.value},
            status_code=status_code
        )
        self.code = reason.value
        self.feature_key = feature_key
        self.reason = reason
