"""
Tests for the entitlement gate.

Checks are evaluated against in-memory snapshots; the snapshot loader is a
plain callable so read failures can be injected directly.
"""

import logging
from dataclasses import replace
from datetime import date
from unittest.mock import Mock

import pytest

from treniko.entitlements.audit import EntitlementAuditLogger
from treniko.entitlements.errors import (
    ClientLimitReachedError,
    EntitlementUnavailableError,
    FeatureNotAvailableError,
    ReadOnlyModeError,
    SessionLimitReachedError,
    SnapshotReadFailure,
    SubscriptionNotFoundError,
    UnknownFeatureError,
)
from treniko.entitlements.features import PlanFeature, parse_feature
from treniko.entitlements.gate import (
    ClientLimitCheck,
    EntitlementGate,
    FeatureCheck,
    GateRequest,
    ReadErrorPolicy,
    ReadOnlyCheck,
    SessionLimitCheck,
)
from treniko.entitlements.snapshot import EntitlementSnapshot

BASE_SNAPSHOT = EntitlementSnapshot(
    tenant_id="tenant_123",
    status="active",
    is_trial=False,
    is_read_only=False,
    plan_id="plan_free",
    plan_name="free",
    plan_display_name="Free",
    current_period_end=date(2026, 4, 1),
    days_until_expiry=17,
    cancel_at_period_end=False,
    clients_count=2,
    max_clients=5,
    clients_limit_reached=False,
    sessions_count=10,
    max_sessions_per_month=40,
    sessions_limit_reached=False,
    max_trainer_seats=1,
    has_training_logs=True,
    has_analytics=False,
    has_export=False,
    has_api_access=False,
    has_custom_branding=False,
    has_priority_support=False,
)


def _snapshot(**overrides):
    return replace(BASE_SNAPSHOT, **overrides)


def _loader(snapshot):
    return Mock(return_value=snapshot)


@pytest.fixture
def audit():
    return Mock(spec=EntitlementAuditLogger)


@pytest.fixture
def gate(audit):
    return EntitlementGate(read_error_policy=ReadErrorPolicy.ALLOW, audit_logger=audit)


def _request(method="POST", path="/api/clients"):
    return GateRequest(tenant_id="tenant_123", method=method, path=path)


class TestReadOnlyCheck:

    @pytest.mark.parametrize("status", ["expired", "suspended"])
    def test_mutation_denied_when_read_only(self, gate, status):
        decision = gate.evaluate(
            _request("PUT", "/api/clients/abc"),
            _loader(_snapshot(status=status, is_read_only=True)),
        )

        assert not decision.allowed
        assert isinstance(decision.denial, ReadOnlyModeError)
        payload = decision.denial.to_dict()
        assert payload["isReadOnly"] is True
        assert payload["subscriptionStatus"] == {
            "status": status,
            "expiredAt": "2026-04-01",
            "planName": "Free",
        }

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    def test_non_mutating_allowed_without_read(self, gate, method):
        loader = _loader(_snapshot(status="expired", is_read_only=True))

        decision = gate.evaluate(_request(method, "/api/clients"), loader)

        assert decision.allowed
        loader.assert_not_called()

    @pytest.mark.parametrize("path", [
        "/api/subscriptions/change-plan",
        "/api/subscriptions/cancel",
        "/api/subscriptions",
    ])
    def test_subscription_management_stays_writable(self, gate, path):
        decision = gate.evaluate(
            _request("POST", path),
            _loader(_snapshot(status="suspended", is_read_only=True)),
        )

        assert decision.allowed

    def test_prefix_match_is_segment_aware(self):
        check = ReadOnlyCheck()

        assert check.applies_to(_request("POST", "/api/subscriptionsx"))

    def test_no_subscription_denies_mutation(self, gate):
        decision = gate.evaluate(_request("DELETE", "/api/sessions/1"), _loader(None))

        assert isinstance(decision.denial, SubscriptionNotFoundError)
        assert decision.denial.to_dict()["message"] == "No active subscription found"


class TestLimitChecks:

    def test_client_limit_denies_create(self, gate):
        decision = gate.evaluate(
            _request("POST", "/api/clients"),
            _loader(_snapshot(clients_count=5, clients_limit_reached=True)),
        )

        assert isinstance(decision.denial, ClientLimitReachedError)
        assert decision.denial.http_status == 403
        payload = decision.denial.to_dict()
        assert payload["limit"] == 5
        assert payload["current"] == 5
        assert payload["planName"] == "Free"
        assert payload["upgradeRequired"] is True
        assert payload["clientsLimitReached"] is True

    def test_session_limit_denies_create(self, gate):
        decision = gate.evaluate(
            _request("POST", "/api/sessions/"),
            _loader(_snapshot(sessions_count=40, sessions_limit_reached=True)),
        )

        assert isinstance(decision.denial, SessionLimitReachedError)
        assert decision.denial.to_dict()["sessionsLimitReached"] is True

    def test_limit_only_applies_to_create(self, gate):
        snapshot = _snapshot(clients_count=5, clients_limit_reached=True)

        assert gate.evaluate(_request("PUT", "/api/clients/abc"), _loader(snapshot)).allowed
        assert gate.evaluate(_request("POST", "/api/sessions"), _loader(snapshot)).allowed

    def test_below_limit_allowed(self, gate):
        assert gate.evaluate(_request("POST", "/api/clients"), _loader(_snapshot())).allowed

    def test_no_subscription_limit_check_allows(self):
        gate = EntitlementGate([ClientLimitCheck()], ReadErrorPolicy.ALLOW, Mock(spec=EntitlementAuditLogger))

        assert gate.evaluate(_request("POST", "/api/clients"), _loader(None)).allowed

    def test_custom_paths(self):
        check = SessionLimitCheck(paths=["/api/v2/bookings/"])

        assert check.applies_to(_request("POST", "/api/v2/bookings"))
        assert not check.applies_to(_request("POST", "/api/sessions"))


class TestFeatureCheck:

    def test_disabled_feature_denied(self, audit):
        gate = EntitlementGate([FeatureCheck("analytics")], ReadErrorPolicy.ALLOW, audit)

        decision = gate.evaluate(_request("GET", "/api/analytics"), _loader(_snapshot()))

        assert isinstance(decision.denial, FeatureNotAvailableError)
        payload = decision.denial.to_dict()
        assert payload["feature"] == "analytics"
        assert payload["upgradeRequired"] is True
        assert decision.check == "feature:analytics"

    def test_enabled_feature_allowed(self, audit):
        gate = EntitlementGate([FeatureCheck(PlanFeature.TRAINING_LOGS)], ReadErrorPolicy.ALLOW, audit)

        assert gate.evaluate(_request("GET", "/api/training-logs"), _loader(_snapshot())).allowed

    def test_unknown_feature_rejected_at_construction(self):
        with pytest.raises(UnknownFeatureError):
            FeatureCheck("time_travel")

    def test_parse_feature_accepts_enum_and_name(self):
        assert parse_feature("export") is PlanFeature.EXPORT
        assert parse_feature(PlanFeature.EXPORT) is PlanFeature.EXPORT
        assert PlanFeature.EXPORT.plan_flag == "has_export"

    def test_no_subscription_denies_feature(self, audit):
        gate = EntitlementGate([FeatureCheck("export")], ReadErrorPolicy.ALLOW, audit)

        decision = gate.evaluate(_request("GET", "/api/export"), _loader(None))

        assert isinstance(decision.denial, SubscriptionNotFoundError)


class TestReadErrorPolicy:

    def test_read_failure_fails_open_by_default(self, gate, audit):
        loader = Mock(side_effect=SnapshotReadFailure("tenant_123", Exception("timeout")))

        decision = gate.evaluate(_request("POST", "/api/clients"), loader)

        assert decision.allowed
        assert decision.failed_open
        audit.log_read_failure.assert_called_once()
        audit.log_denial.assert_not_called()

    def test_unexpected_loader_error_fails_open(self, gate, audit):
        decision = gate.evaluate(_request(), Mock(side_effect=RuntimeError("pool exhausted")))

        assert decision.allowed
        event = audit.log_read_failure.call_args[0][0]
        assert event.policy == "allow"
        assert "RuntimeError" in event.error

    def test_deny_policy_returns_unavailable(self, audit):
        gate = EntitlementGate(read_error_policy=ReadErrorPolicy.DENY, audit_logger=audit)

        decision = gate.evaluate(_request(), Mock(side_effect=RuntimeError("down")))

        assert not decision.allowed
        assert isinstance(decision.denial, EntitlementUnavailableError)
        assert decision.denial.http_status == 503

    @pytest.mark.parametrize("value,expected", [
        ("allow", ReadErrorPolicy.ALLOW),
        ("DENY", ReadErrorPolicy.DENY),
        ("sometimes", ReadErrorPolicy.ALLOW),
    ])
    def test_policy_from_env(self, monkeypatch, value, expected):
        monkeypatch.setenv("ENTITLEMENT_READ_ERROR_POLICY", value)

        assert ReadErrorPolicy.from_env() is expected

    def test_policy_defaults_to_allow(self, monkeypatch):
        monkeypatch.delenv("ENTITLEMENT_READ_ERROR_POLICY", raising=False)

        assert EntitlementGate(audit_logger=Mock()).read_error_policy is ReadErrorPolicy.ALLOW

    def test_with_checks_keeps_policy(self, audit):
        gate = EntitlementGate(read_error_policy=ReadErrorPolicy.DENY, audit_logger=audit)

        assert gate.with_checks([FeatureCheck("export")]).read_error_policy is ReadErrorPolicy.DENY


class TestGateEvaluation:

    def test_snapshot_read_once_per_evaluation(self, audit):
        gate = EntitlementGate(
            [ReadOnlyCheck(), ClientLimitCheck(), FeatureCheck("training_logs")],
            ReadErrorPolicy.ALLOW,
            audit,
        )
        loader = _loader(_snapshot())

        gate.evaluate(_request("POST", "/api/clients"), loader)

        loader.assert_called_once_with("tenant_123")

    def test_no_applicable_check_skips_read(self, gate):
        loader = _loader(_snapshot())

        assert gate.evaluate(_request("GET", "/api/clients"), loader).allowed
        loader.assert_not_called()

    def test_denial_is_audited(self, gate, audit):
        gate.evaluate(
            _request("POST", "/api/clients"),
            _loader(_snapshot(clients_count=5, clients_limit_reached=True)),
        )

        event = audit.log_denial.call_args[0][0]
        assert event.tenant_id == "tenant_123"
        assert event.check == "client_limit"
        assert event.reason_code == "client_limit_reached"
        assert event.endpoint == "/api/clients"

    def test_audit_logger_writes_to_dedicated_logger(self, caplog):
        gate = EntitlementGate(read_error_policy=ReadErrorPolicy.ALLOW, audit_logger=EntitlementAuditLogger())

        with caplog.at_level(logging.WARNING, logger="treniko.entitlements.audit"):
            gate.evaluate(
                _request("POST", "/api/clients"),
                _loader(_snapshot(clients_count=5, clients_limit_reached=True)),
            )

        records = [r for r in caplog.records if r.name == "treniko.entitlements.audit"]
        assert len(records) == 1
        assert records[0].audit_data["reason_code"] == "client_limit_reached"
