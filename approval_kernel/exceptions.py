"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval decisions are surfaced to users ("this step was already decided"),
to operators ("workflow kind is not registered") and to API layers (HTTP
status mapping).  Callers must be able to tell these apart without parsing
message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        orchestrator.approve_step(step_id, user_id)
    except NotCurrentStepError as e:
        return {"error": e.code, "step_id": e.step_id}  # safe to refresh/retry
    except ForbiddenApproverError as e:
        return {"error": e.code}, 403

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- InvalidChainError
    |
    +-- NotFoundError
    |   +-- ApprovalNotFoundError
    |   +-- ApprovalStepNotFoundError
    |
    +-- TransitionError
    |   +-- NotCurrentStepError
    |   +-- AlreadyTerminalError
    |
    +-- AuthorizationError
    |   +-- ForbiddenApproverError
    |
    +-- ConfigurationError
    |   +-- UnknownWorkflowKindError
    |   +-- WorkflowKindAlreadyRegisteredError
    |   +-- RouteNotFoundError
    |   +-- InvalidRouteConfigError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                             | When Raised
----------------|----------------------------------|------------------------------------
Chain           | INVALID_CHAIN                    | Step orders not dense 1..N, empty
                |                                  | chain, or step without assignee
----------------|----------------------------------|------------------------------------
Lookup          | APPROVAL_NOT_FOUND               | Approval id doesn't exist
                | APPROVAL_STEP_NOT_FOUND          | Step id doesn't exist
----------------|----------------------------------|------------------------------------
Transition      | NOT_CURRENT_STEP                 | Out-of-order or lost-race attempt
                | ALREADY_TERMINAL                 | Approval already decided
----------------|----------------------------------|------------------------------------
Authorization   | FORBIDDEN                        | Actor is not the step's assignee
----------------|----------------------------------|------------------------------------
Configuration   | UNKNOWN_WORKFLOW_KIND            | Kind not registered (FATAL, alert)
                | WORKFLOW_KIND_ALREADY_REGISTERED | Duplicate registry entry
                | ROUTE_NOT_FOUND                  | No active route for kind/name
                | INVALID_ROUTE_CONFIG             | Malformed route YAML
----------------|----------------------------------|------------------------------------
Immutability    | IMMUTABILITY_VIOLATION           | Direct edit of a decided row

===============================================================================
HANDLING PATTERNS
===============================================================================

1. User-facing errors (TransitionError, AuthorizationError, NotFoundError,
   InvalidChainError) are returned synchronously to the caller.  The
   transaction is rolled back, no state changes.

2. ConfigurationError means the deployment is wrong, not the request.  Do
   not retry; alert operators.

3. Workflow hook failures are NOT exceptions to the caller: the decision is
   already committed and the failure is reported on the result.
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Chain validation


class InvalidChainError(ApprovalKernelError):
    """Step chain is malformed (rejected before any write)."""

    code: str = "INVALID_CHAIN"

    def __init__(self, reason: str, step_orders: list[int] | None = None):
        self.reason = reason
        self.step_orders = step_orders or []
        super().__init__(f"Invalid approval chain: {reason}")


# Lookup errors


class NotFoundError(ApprovalKernelError):
    """Base exception for missing approvals or steps."""

    code: str = "NOT_FOUND"


class ApprovalNotFoundError(NotFoundError):
    """Approval with given ID was not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, approval_id: int):
        self.approval_id = approval_id
        super().__init__(f"Approval not found: {approval_id}")


class ApprovalStepNotFoundError(NotFoundError):
    """Approval step with given ID was not found."""

    code: str = "APPROVAL_STEP_NOT_FOUND"

    def __init__(self, step_id: int):
        self.step_id = step_id
        super().__init__(f"Approval step not found: {step_id}")


# Transition errors


class TransitionError(ApprovalKernelError):
    """Base exception for rejected step transitions."""

    code: str = "TRANSITION_ERROR"


class NotCurrentStepError(TransitionError):
    """
    Step is not the one the approval is waiting on.

    Raised for out-of-order attempts and for the loser of two concurrent
    transitions on the same step.  Safe for the UI to refresh and retry.
    """

    code: str = "NOT_CURRENT_STEP"

    def __init__(
        self,
        step_id: int,
        approval_id: int,
        current_step_id: int | None = None,
        step_status: str | None = None,
    ):
        self.step_id = step_id
        self.approval_id = approval_id
        self.current_step_id = current_step_id
        self.step_status = step_status
        super().__init__(
            f"Step {step_id} is not the current step of approval {approval_id}: "
            "this step was already decided or is not yet reachable"
        )


class AlreadyTerminalError(TransitionError):
    """Approval has already been approved or rejected."""

    code: str = "ALREADY_TERMINAL"

    def __init__(self, approval_id: int, status: str):
        self.approval_id = approval_id
        self.status = status
        super().__init__(f"Approval {approval_id} is already {status}")


# Authorization errors


class AuthorizationError(ApprovalKernelError):
    """Base exception for authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class ForbiddenApproverError(AuthorizationError):
    """Actor is not authorized to act on this step or approval."""

    code: str = "FORBIDDEN"

    def __init__(self, actor_id: str, approval_id: int, step_id: int | None = None):
        self.actor_id = actor_id
        self.approval_id = approval_id
        self.step_id = step_id
        target = f"step {step_id}" if step_id is not None else f"approval {approval_id}"
        super().__init__(
            f"User {actor_id} does not have permission to act on {target}"
        )


# Configuration errors


class ConfigurationError(ApprovalKernelError):
    """
    Base exception for deployment/configuration errors.

    These are fatal: they indicate a wiring mistake, not a bad request, and
    must not be retried.
    """

    code: str = "CONFIGURATION_ERROR"


class UnknownWorkflowKindError(ConfigurationError):
    """No registry entry exists for a workflow kind."""

    code: str = "UNKNOWN_WORKFLOW_KIND"

    def __init__(self, workflow_kind: str, registered: list[str] | None = None):
        self.workflow_kind = workflow_kind
        self.registered = registered or []
        super().__init__(
            f"Unknown workflow kind: {workflow_kind}. "
            f"Registered kinds: {self.registered}"
        )


class WorkflowKindAlreadyRegisteredError(ConfigurationError):
    """A registry entry already exists for this workflow kind."""

    code: str = "WORKFLOW_KIND_ALREADY_REGISTERED"

    def __init__(self, workflow_kind: str):
        self.workflow_kind = workflow_kind
        super().__init__(f"Workflow kind already registered: {workflow_kind}")


class RouteNotFoundError(ConfigurationError):
    """No active approval route matches the requested kind/name."""

    code: str = "ROUTE_NOT_FOUND"

    def __init__(self, workflow_kind: str, route_name: str | None = None):
        self.workflow_kind = workflow_kind
        self.route_name = route_name
        target = route_name if route_name is not None else "<default>"
        super().__init__(
            f"No route found for workflow kind {workflow_kind}: {target}"
        )


class InvalidRouteConfigError(ConfigurationError):
    """Approval route configuration is malformed."""

    code: str = "INVALID_ROUTE_CONFIG"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid route configuration in {source}: {reason}")


# Immutability


class ImmutabilityViolationError(ApprovalKernelError):
    """
    Attempted to modify or delete a decided approval record.

    Status fields may only change through the state machine's conditional
    updates; decided steps and approvals are never edited or deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
