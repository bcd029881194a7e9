"""Tests for the payment audit trail."""

from unittest.mock import Mock

import pytest
from psycopg2.extras import Json

from clients.postgres_client import PostgresClient


@pytest.fixture
def postgres():
    return Mock(spec=PostgresClient)


class TestAuditAction:
    """Tests for AuditAction enum."""

    def test_has_create_update_delete(self):
        """AuditAction has required values."""
        from core.audit import AuditAction

        assert AuditAction.CREATE.value == "create"
        assert AuditAction.UPDATE.value == "update"
        assert AuditAction.DELETE.value == "delete"


class TestComputeChanges:
    """Tests for compute_changes utility function."""

    def test_detects_changed_fields(self):
        """Different values for same key detected."""
        from core.audit import compute_changes

        old = {"status": "pending", "total": "44.00"}
        new = {"status": "published", "total": "44.00"}

        changes = compute_changes(old, new)

        assert changes == {"status": {"old": "pending", "new": "published"}}

    def test_detects_added_and_removed_fields(self):
        """Keys on one side only are reported against None."""
        from core.audit import compute_changes

        changes = compute_changes({"gateway": "paypal"}, {"mode": "live"})

        assert changes["gateway"] == {"old": "paypal", "new": None}
        assert changes["mode"] == {"old": None, "new": "live"}

    def test_excludes_modified_at_by_default(self):
        """modified_at not reported as change."""
        from core.audit import compute_changes

        changes = compute_changes({"modified_at": 1}, {"modified_at": 2})

        assert changes == {}

    def test_custom_exclude_fields(self):
        """Can exclude additional fields."""
        from core.audit import compute_changes

        old = {"status": "pending", "ip": "198.51.100.1"}
        new = {"status": "failed", "ip": "198.51.100.2"}

        changes = compute_changes(old, new, exclude_fields={"ip"})

        assert list(changes) == ["status"]

    def test_keys_are_sorted(self):
        """Changed fields come out in key order."""
        from core.audit import compute_changes

        changes = compute_changes({}, {"total": "1", "email": "a", "fees": 0})

        assert list(changes) == ["email", "fees", "total"]


class TestAuditLogger:
    """Tests for AuditLogger class."""

    def test_log_change_inserts_entry(self, postgres):
        """One row per change, changes wrapped as JSONB."""
        from core.audit import AuditLogger, AuditAction

        audit = AuditLogger(postgres)
        audit.log_change(
            entity_type="payment",
            entity_id=42,
            action=AuditAction.UPDATE,
            changes={"status": {"old": "pending", "new": "published"}},
            actor="webhook:stripe",
        )

        sql, params = postgres.execute.call_args.args
        assert "INSERT INTO audit_log" in sql
        entry_id, actor, entity_type, entity_id, action, changes, created_at = params
        assert (actor, entity_type, entity_id, action) == ("webhook:stripe", "payment", 42, "update")
        assert isinstance(changes, Json)
        assert changes.adapted == {"status": {"old": "pending", "new": "published"}}
        assert created_at.tzinfo is not None
        assert len(entry_id) == 36

    def test_actor_defaults_to_none(self, postgres):
        """Unattributed changes have no actor."""
        from core.audit import AuditLogger, AuditAction

        AuditLogger(postgres).log_change("customer", 7, AuditAction.CREATE, {"created": {}})

        assert postgres.execute.call_args.args[1][1] is None

    def test_get_entity_history(self, postgres):
        """History query filters by entity and orders newest first."""
        from core.audit import AuditLogger

        postgres.execute.return_value = [{"action": "update"}, {"action": "create"}]

        history = AuditLogger(postgres).get_entity_history("payment", 42)

        sql, params = postgres.execute.call_args.args
        assert params == ("payment", 42)
        assert "ORDER BY created_at DESC" in sql
        assert [entry["action"] for entry in history] == ["update", "create"]
