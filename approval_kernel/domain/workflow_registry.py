"""WorkflowRegistry -- Workflow-kind to business-hook capability table.

Each ``WorkflowKind`` maps to exactly one ``WorkflowRegistryEntry``.  The
engine only ever calls the entry's hooks; it never knows what approving a
vault document or a change request actually does.

Registration happens once at startup.  Resolving a kind that has no entry
is a deployment error (``UnknownWorkflowKindError``) and is logged at
CRITICAL so operators are alerted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from approval_kernel.domain.approval import WorkflowKind
from approval_kernel.exceptions import (
    UnknownWorkflowKindError,
    WorkflowKindAlreadyRegisteredError,
)
from approval_kernel.logging_config import get_logger

logger = get_logger("domain.workflow_registry")

FetchDetails = Callable[[int], Any]
OnApproved = Callable[[int, str], None]
OnRejected = Callable[[int, str, str | None], None]
DisplayText = Callable[[Any], str | None]


@dataclass(frozen=True)
class WorkflowRegistryEntry:
    """Hooks for one workflow kind.

    ``fetch_details(ref_id)`` feeds the query surface.  ``on_approved`` and
    ``on_rejected`` are invoked exactly once, after the terminal decision
    has committed.
    """

    name: str
    fetch_details: FetchDetails
    on_approved: OnApproved
    on_rejected: OnRejected
    display_title: DisplayText | None = None
    display_description: DisplayText | None = None

    def title_for(self, payload: Any) -> str:
        if self.display_title is not None:
            title = self.display_title(payload)
            if title:
                return title
        return self.name

    def description_for(self, payload: Any) -> str | None:
        if self.display_description is not None:
            return self.display_description(payload)
        return None


class WorkflowRegistry:
    """Registry of workflow hooks keyed by exact ``WorkflowKind`` match."""

    def __init__(self) -> None:
        self._entries: dict[WorkflowKind, WorkflowRegistryEntry] = {}

    def register(
        self,
        kind: WorkflowKind | str,
        entry: WorkflowRegistryEntry,
    ) -> None:
        """Register hooks for a kind.  Each kind may be registered once."""
        workflow_kind = self._coerce(kind)
        if workflow_kind in self._entries:
            raise WorkflowKindAlreadyRegisteredError(workflow_kind.value)
        self._entries[workflow_kind] = entry
        logger.debug(
            "workflow_kind_registered",
            extra={"workflow_kind": workflow_kind.value, "entry_name": entry.name},
        )

    def resolve(self, kind: WorkflowKind | str) -> WorkflowRegistryEntry:
        """Return the entry for ``kind`` or raise UnknownWorkflowKindError."""
        workflow_kind = self._coerce(kind)
        entry = self._entries.get(workflow_kind)
        if entry is None:
            self._unknown(workflow_kind.value)
        return entry

    def is_registered(self, kind: WorkflowKind | str) -> bool:
        try:
            return WorkflowKind(kind) in self._entries
        except ValueError:
            return False

    def kinds(self) -> list[WorkflowKind]:
        """List registered kinds in declaration order."""
        return [k for k in WorkflowKind if k in self._entries]

    def _coerce(self, kind: WorkflowKind | str) -> WorkflowKind:
        if isinstance(kind, WorkflowKind):
            return kind
        try:
            return WorkflowKind(kind)
        except ValueError:
            self._unknown(str(kind))

    def _unknown(self, kind: str) -> None:
        registered = [k.value for k in self.kinds()]
        logger.critical(
            "workflow_kind_unknown",
            extra={"requested_kind": kind, "registered_kinds": registered},
        )
        raise UnknownWorkflowKindError(kind, registered)
