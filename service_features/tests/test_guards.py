"""
Unit tests for per-feature guards and the access logger.
"""

import pytest
from unittest.mock import MagicMock, patch

from prometheus_client import CollectorRegistry

from shared.metrics import MetricsCollector
from service_features.app.context.collaborators import (
    AccessLogger, StructlogAccessLogger
)
from service_features.app.errors import FeatureAccessDenied, IdentityUnavailable, PolicyStoreUnavailable
from service_features.app.guards import (
    FeatureGuard, status_for_reason, message_for_reason,
    check_feature_access, assert_feature_access
)
from service_features.app.rules.models import (
    ActorContext, Policy, ReasonCode, TierLevel, Verdict, FaultKind, Severity
)
from service_features.app.rules.policies import UNKNOWN_FEATURE_POLICY


class TestReasonMapping:
    """Reason code to status and message mapping."""

    @pytest.mark.parametrize("reason,status", [
        (ReasonCode.UNAUTHENTICATED, 401),
        (ReasonCode.TIER_RESTRICTION, 403),
        (ReasonCode.NO_ACTIVE_SUBSCRIPTION, 403),
        (ReasonCode.DENYLISTED, 403),
        (ReasonCode.FEATURE_DISABLED, 404),
        (ReasonCode.ROLLOUT_NOT_ELIGIBLE, 404),
    ])
    def test_status_for_reason(self, reason, status):
        assert status_for_reason(reason) == status

    def test_every_reason_has_a_message(self):
        for reason in ReasonCode:
            assert message_for_reason(reason)

    def test_hidden_features_share_a_message(self):
        """Test disabled and rollout-gated features are indistinguishable."""
        assert message_for_reason(ReasonCode.FEATURE_DISABLED) == message_for_reason(
            ReasonCode.ROLLOUT_NOT_ELIGIBLE
        )


class TestFeatureGuard:
    """Test cases for FeatureGuard."""

    @pytest.fixture
    def access_logger(self):
        return MagicMock()

    @pytest.fixture
    def guard(self, access_logger):
        return FeatureGuard(access_logger)

    @pytest.fixture
    def free_actor(self):
        return ActorContext(id="u1", tier=TierLevel.FREE)

    def test_check_uses_default_policy(self, guard, free_actor):
        assert guard.check("excel_export", free_actor) == Verdict.allow()
        assert guard.check("pdf_import", free_actor) == Verdict.deny(ReasonCode.TIER_RESTRICTION)

    def test_check_prefers_supplied_policies(self, guard, free_actor):
        policies = {"pdf_import": Policy(enabled=True, min_tier=TierLevel.FREE)}

        assert guard.check("pdf_import", free_actor, policies).allowed is True

    def test_unknown_feature_is_disabled(self, guard, free_actor):
        assert guard.policy_for("does_not_exist") == UNKNOWN_FEATURE_POLICY
        assert guard.check("does_not_exist", free_actor) == Verdict.deny(ReasonCode.FEATURE_DISABLED)

    def test_check_records_verdict(self, guard, access_logger, free_actor):
        guard.check("excel_export", free_actor, metadata={"route": "/export"})

        access_logger.record.assert_called_once_with(
            "excel_export", "u1", Verdict.allow(), {"tier": "free", "route": "/export"}
        )

    def test_anonymous_actor_recorded_as_anonymous(self, guard, access_logger):
        guard.check("auth", ActorContext.anonymous())

        assert access_logger.record.call_args.args[1] == "anonymous"

    def test_failing_access_logger_is_ignored(self, free_actor):
        access_logger = MagicMock()
        access_logger.record.side_effect = RuntimeError("sink down")
        guard = FeatureGuard(access_logger)

        assert guard.check("excel_export", free_actor).allowed is True

    def test_require_returns_actor(self, guard, free_actor):
        assert guard.require("excel_export", free_actor) is free_actor

    @pytest.mark.parametrize("feature_key,actor,reason,status", [
        ("excel_export", ActorContext.anonymous(), ReasonCode.UNAUTHENTICATED, 401),
        ("pdf_import", ActorContext(id="u1", tier=TierLevel.FREE), ReasonCode.TIER_RESTRICTION, 403),
        ("pdf_import", ActorContext(id="u1", tier=TierLevel.PREMIUM), ReasonCode.NO_ACTIVE_SUBSCRIPTION, 403),
        ("monetization", ActorContext(id="u1", tier=TierLevel.PREMIUM), ReasonCode.FEATURE_DISABLED, 404),
    ])
    def test_require_raises_with_status(self, guard, feature_key, actor, reason, status):
        with pytest.raises(FeatureAccessDenied) as exc_info:
            guard.require(feature_key, actor)

        error = exc_info.value
        assert error.reason is reason
        assert error.status_code == status
        assert error.code == reason.value
        assert error.feature_key == feature_key
        assert error.details == {"feature_key": feature_key, "reason": reason.value}

    def test_denial_converts_to_error_response(self, guard):
        with pytest.raises(FeatureAccessDenied) as exc_info:
            guard.require("excel_export", ActorContext.anonymous())

        response = exc_info.value.to_response()

        assert response.code == "unauthenticated"
        assert response.message == "Authentication required"
        assert response.details["feature_key"] == "excel_export"

    def test_denial_keeps_reason_status(self, guard, free_actor):
        with pytest.raises(FeatureAccessDenied) as exc_info:
            guard.require("risk_chart", free_actor)

        assert exc_info.value.status_code == 403
        assert exc_info.value.code == "tier_restriction"

    def test_module_level_helpers(self, free_actor):
        assert check_feature_access("excel_export", free_actor).allowed is True
        with pytest.raises(FeatureAccessDenied):
            assert_feature_access("risk_chart", free_actor)


class TestStructlogAccessLogger:
    """Test cases for StructlogAccessLogger."""

    @pytest.fixture
    def registry(self):
        return CollectorRegistry()

    @pytest.fixture
    def access_logger(self, registry):
        return StructlogAccessLogger(MetricsCollector("features", registry))

    def test_satisfies_protocol(self, access_logger):
        assert isinstance(access_logger, AccessLogger)

    def test_allowed_verdict_logged_at_info(self, access_logger, registry):
        with patch.object(access_logger, "logger") as mock_logger:
            access_logger.record("auth", "u1", Verdict.allow(), {"tier": "free"})

        mock_logger.info.assert_called_once_with(
            "Feature access allowed",
            tier="free", feature_key="auth", actor_id="u1", allowed=True, reason=None
        )
        assert registry.get_sample_value(
            "entitlement_checks_total", {"decision": "allow", "reason": "none"}
        ) == 1

    def test_denied_verdict_logged_at_warning(self, access_logger, registry):
        with patch.object(access_logger, "logger") as mock_logger:
            access_logger.record("pdf_import", "u1", Verdict.deny(ReasonCode.TIER_RESTRICTION))

        assert mock_logger.warning.call_args.kwargs["reason"] == "tier_restriction"
        assert registry.get_sample_value(
            "entitlement_checks_total", {"decision": "deny", "reason": "tier_restriction"}
        ) == 1

    def test_error_fault_logged_at_error(self, access_logger, registry):
        with patch.object(access_logger, "logger") as mock_logger:
            access_logger.report(FaultKind.POLICY_LOAD_FAILED, Severity.ERROR, ConnectionError())

        fields = mock_logger.error.call_args.kwargs
        assert fields["fault"] == "policy_load_failed"
        assert fields["error"] == "ConnectionError"
        assert fields["error_type"] == "ConnectionError"
        assert registry.get_sample_value(
            "entitlement_faults_total", {"fault": "policy_load_failed", "severity": "error"}
        ) == 1

    def test_warning_fault_logged_at_warning(self, access_logger):
        with patch.object(access_logger, "logger") as mock_logger:
            access_logger.report(FaultKind.TIER_RECORD_MISSING, Severity.WARNING, metadata={"actor_id": "u1"})

        mock_logger.warning.assert_called_once_with(
            "Entitlement context fault", actor_id="u1", fault="tier_record_missing"
        )
        mock_logger.error.assert_not_called()

    def test_without_metrics(self):
        access_logger = StructlogAccessLogger()

        with patch.object(access_logger, "logger"):
            access_logger.record("auth", "u1", Verdict.allow())
            access_logger.report(FaultKind.ASSEMBLY_FAILED, Severity.ERROR)


class TestErrorResponses:
    """Error bodies and status codes for collaborator failures."""

    def test_store_failure_response(self):
        error = PolicyStoreUnavailable("timed out")

        response = error.to_response()

        assert error.status_code == 503
        assert response.code == "EXTERNAL_SERVICE_ERROR"
        assert response.message == "policy_store: timed out"
        assert response.details == {"service": "policy_store"}
        assert response.trace_id is None

    def test_identity_failure_status(self):
        error = IdentityUnavailable()

        assert error.status_code == 503
        assert error.to_response().details["service"] == "identity_provider"

    def test_response_carries_active_trace_id(self):
        span = MagicMock()
        span.is_recording.return_value = True
        span.get_span_context.return_value.trace_id = 1

        with patch("shared.logging.trace.get_current_span", return_value=span):
            response = PolicyStoreUnavailable().to_response()

        assert response.trace_id == "0" * 31 + "1"
