"""
Tests for WorkflowRegistry.

Covers:
- register/resolve by enum and by string
- duplicate registration
- unknown and unregistered kinds (CRITICAL log)
- display title/description fallbacks
"""

import pytest

from approval_kernel.domain.approval import WorkflowKind
from approval_kernel.domain.workflow_registry import (
    WorkflowRegistry,
    WorkflowRegistryEntry,
)
from approval_kernel.exceptions import (
    ConfigurationError,
    UnknownWorkflowKindError,
    WorkflowKindAlreadyRegisteredError,
)


def make_entry(name="Vault Document", **kwargs) -> WorkflowRegistryEntry:
    return WorkflowRegistryEntry(
        name=name,
        fetch_details=lambda ref_id: {"id": ref_id},
        on_approved=lambda ref_id, approver_id: None,
        on_rejected=lambda ref_id, approver_id, reason: None,
        **kwargs,
    )


class TestRegistration:
    def test_resolve_by_enum_and_string(self):
        registry = WorkflowRegistry()
        entry = make_entry()
        registry.register(WorkflowKind.VAULT_DOCUMENT, entry)

        assert registry.resolve(WorkflowKind.VAULT_DOCUMENT) is entry
        assert registry.resolve("VAULT_DOCUMENT") is entry
        assert registry.is_registered("VAULT_DOCUMENT")
        assert registry.kinds() == [WorkflowKind.VAULT_DOCUMENT]

    def test_duplicate_registration_rejected(self):
        registry = WorkflowRegistry()
        registry.register(WorkflowKind.DPA, make_entry("DPA"))
        with pytest.raises(WorkflowKindAlreadyRegisteredError) as exc_info:
            registry.register("DPA", make_entry("Other"))
        assert isinstance(exc_info.value, ConfigurationError)

    def test_registration_with_unknown_kind_rejected(self):
        with pytest.raises(UnknownWorkflowKindError):
            WorkflowRegistry().register("PAYROLL", make_entry())

    def test_kinds_follow_declaration_order(self):
        registry = WorkflowRegistry()
        registry.register(WorkflowKind.VAULT_DOCUMENT, make_entry())
        registry.register(WorkflowKind.CHANGE_REQUEST, make_entry())
        assert registry.kinds() == [WorkflowKind.CHANGE_REQUEST, WorkflowKind.VAULT_DOCUMENT]


class TestUnknownKinds:
    def test_unregistered_kind(self, captured_logs):
        registry = WorkflowRegistry()
        registry.register(WorkflowKind.VAULT_DOCUMENT, make_entry())

        with pytest.raises(UnknownWorkflowKindError) as exc_info:
            registry.resolve(WorkflowKind.DPA)
        assert exc_info.value.code == "UNKNOWN_WORKFLOW_KIND"
        assert exc_info.value.workflow_kind == "DPA"

        critical = [r for r in captured_logs() if r["message"] == "workflow_kind_unknown"]
        assert len(critical) == 1
        assert critical[0]["level"] == "CRITICAL"
        assert critical[0]["registered_kinds"] == ["VAULT_DOCUMENT"]

    def test_nonexistent_kind_string(self):
        registry = WorkflowRegistry()
        with pytest.raises(UnknownWorkflowKindError):
            registry.resolve("NOT_A_KIND")
        assert not registry.is_registered("NOT_A_KIND")


class TestDisplayText:
    def test_title_falls_back_to_name(self):
        entry = make_entry("Change Request")
        assert entry.title_for({"id": 1}) == "Change Request"
        assert entry.description_for({"id": 1}) is None

    def test_custom_display(self):
        entry = make_entry(
            display_title=lambda p: f"Doc {p['id']}",
            display_description=lambda p: "Needs review",
        )
        assert entry.title_for({"id": 7}) == "Doc 7"
        assert entry.description_for({"id": 7}) == "Needs review"

    def test_empty_custom_title_falls_back(self):
        entry = make_entry("Vault Document", display_title=lambda p: "")
        assert entry.title_for({}) == "Vault Document"
