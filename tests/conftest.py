"""
Pytest fixtures for the approval engine test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path by default)
- Recording workflow hooks, cache invalidator and notifier
- Service, selector and orchestrator wired against the test database
- Captured structured JSON logs

Environment Variables:
- APPROVAL_TEST_DATABASE_URL: run against another database (e.g. a local
  PostgreSQL).  Tables are dropped and recreated for every test.
"""

import json
import logging
import os
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from approval_config import RouteTable, load_default_route_table
from approval_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from approval_kernel.domain.approval import StepSpec, WorkflowKind
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.domain.workflow_registry import (
    WorkflowRegistry,
    WorkflowRegistryEntry,
)
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.selectors.approval_selector import ApprovalSelector, UserInfo
from approval_kernel.services.approval_service import ApprovalService
from approval_services.approval_orchestrator import ApprovalOrchestrator
from approval_services.side_effects import SideEffectDispatcher

# Kinds registered by the default test registry.  Everything else is
# deliberately unregistered.
REGISTERED_KINDS = (
    WorkflowKind.VAULT_DOCUMENT,
    WorkflowKind.CHANGE_REQUEST,
    WorkflowKind.ENGAGEMENT_LETTER,
    WorkflowKind.CLIENT_ACCEPTANCE,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.approve_step(...)
            logs = captured_logs()
            assert any(r["message"] == "approval_finalized" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


def get_database_url(tmp_path) -> str:
    """Database URL from the environment, or a throwaway SQLite file."""
    return os.environ.get(
        "APPROVAL_TEST_DATABASE_URL",
        f"sqlite:///{tmp_path / 'approvals.db'}",
    )


@pytest.fixture
def db_engine(tmp_path):
    """Engine with freshly created tables, disposed after the test.

    Pool is large enough for the concurrency tests.
    """
    eng = init_engine_from_url(
        get_database_url(tmp_path),
        echo=False,
        pool_size=10,
        max_overflow=10,
        pool_timeout=10,
    )
    drop_tables()
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """Session for kernel-level tests.

    Kernel services only flush; tests that need durable state call
    ``session.commit()`` themselves.  Anything left uncommitted is rolled
    back at teardown.
    """
    sess = session_factory()
    yield sess
    try:
        sess.rollback()
    finally:
        sess.close()


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Workflow hooks and collaborators
# =============================================================================


class RecordingHooks:
    """Workflow hooks that record every call.

    Set ``fail_with`` to an exception instance to make the decision hooks
    raise after recording the call.
    """

    def __init__(self):
        self.approved: list[tuple[int, str]] = []
        self.rejected: list[tuple[int, str, str | None]] = []
        self.fetched: list[int] = []
        self.fail_with: Exception | None = None

    def fetch_details(self, ref_id: int) -> dict:
        self.fetched.append(ref_id)
        return {"id": ref_id, "name": f"Entity {ref_id}", "owner": "owner-1"}

    def on_approved(self, ref_id: int, approver_id: str) -> None:
        self.approved.append((ref_id, approver_id))
        if self.fail_with is not None:
            raise self.fail_with

    def on_rejected(self, ref_id: int, approver_id: str, reason: str | None) -> None:
        self.rejected.append((ref_id, approver_id, reason))
        if self.fail_with is not None:
            raise self.fail_with

    def entry(self, name: str) -> WorkflowRegistryEntry:
        return WorkflowRegistryEntry(
            name=name,
            fetch_details=self.fetch_details,
            on_approved=self.on_approved,
            on_rejected=self.on_rejected,
            display_title=lambda payload: payload["name"],
            display_description=lambda payload: f"Owned by {payload['owner']}",
        )

    @property
    def call_count(self) -> int:
        return len(self.approved) + len(self.rejected)


class RecordingCache:
    def __init__(self):
        self.invalidated: list[tuple[WorkflowKind, int]] = []
        self.fail_with: Exception | None = None

    def invalidate(self, workflow_kind, workflow_ref_id) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.invalidated.append((workflow_kind, workflow_ref_id))


class RecordingNotifier:
    def __init__(self):
        self.assigned: list[tuple[str, int]] = []
        self.resolved: list[tuple[str, int, str]] = []
        self.fail_with: Exception | None = None

    def approval_assigned(self, user_id, approval) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.assigned.append((user_id, approval.id))

    def approval_resolved(self, user_id, approval) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.resolved.append((user_id, approval.id, approval.status.value))


class StaticUserDirectory:
    def __init__(self, users: dict[str, UserInfo]):
        self._users = users
        self.lookups: list[list[str]] = []

    def lookup(self, user_ids):
        ids = list(user_ids)
        self.lookups.append(ids)
        return {uid: self._users[uid] for uid in ids if uid in self._users}


@pytest.fixture
def hooks() -> RecordingHooks:
    return RecordingHooks()


@pytest.fixture
def registry(hooks) -> WorkflowRegistry:
    reg = WorkflowRegistry()
    for kind in REGISTERED_KINDS:
        reg.register(kind, hooks.entry(kind.value.replace("_", " ").title()))
    return reg


@pytest.fixture
def cache() -> RecordingCache:
    return RecordingCache()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def user_directory() -> StaticUserDirectory:
    return StaticUserDirectory({
        "alice": UserInfo("alice", "Alice Adams", "alice@example.com"),
        "bob": UserInfo("bob", "Bob Brown", "bob@example.com"),
        "carol": UserInfo("carol", "Carol Chen", "carol@example.com"),
        "requester": UserInfo("requester", "Rita Requester", "rita@example.com"),
    })


@pytest.fixture
def dispatcher(cache, notifier) -> SideEffectDispatcher:
    return SideEffectDispatcher(cache=cache, notifier=notifier)


@pytest.fixture
def route_table() -> RouteTable:
    return load_default_route_table()


# =============================================================================
# Engine components
# =============================================================================


@pytest.fixture
def make_chain():
    """Factory for step lists: ``make_chain("alice", "bob", optional={2})``."""

    def _make(*assignees: str, optional: set[int] | frozenset[int] = frozenset()) -> list[StepSpec]:
        return [
            StepSpec(
                step_order=i,
                assigned_to_user_id=user,
                is_required=i not in optional,
            )
            for i, user in enumerate(assignees, start=1)
        ]

    return _make


@pytest.fixture
def approval_service(session, registry, deterministic_clock) -> ApprovalService:
    return ApprovalService(session, registry, deterministic_clock)


@pytest.fixture
def approval_selector(session, registry, user_directory) -> ApprovalSelector:
    return ApprovalSelector(session, registry, user_directory)


@pytest.fixture
def orchestrator(
    session_factory,
    registry,
    deterministic_clock,
    route_table,
    dispatcher,
    user_directory,
) -> ApprovalOrchestrator:
    return ApprovalOrchestrator(
        session_factory,
        registry,
        clock=deterministic_clock,
        route_table=route_table,
        dispatcher=dispatcher,
        user_directory=user_directory,
    )


@pytest.fixture
def create_vault_approval(orchestrator, make_chain):
    """Create a committed VAULT_DOCUMENT approval through the orchestrator."""

    def _create(
        *assignees: str,
        ref_id: int = 101,
        requires_all_steps: bool = True,
        optional: frozenset[int] = frozenset(),
        **kwargs,
    ):
        return orchestrator.create_approval(
            WorkflowKind.VAULT_DOCUMENT,
            ref_id,
            "requester",
            make_chain(*(assignees or ("alice", "bob", "carol")), optional=optional),
            requires_all_steps,
            **kwargs,
        )

    return _create
