"""Error taxonomy for the transaction progression engine.

Every error is recoverable and meant to reach the caller. ``code`` is a stable
identifier the dashboard uses to pick an inline message; ``status_code`` is the
HTTP status the API layer answers with.
"""


class WorkflowError(Exception):
    """Base class for all caller-visible workflow failures."""

    code = "workflow_error"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class PermissionDeniedError(WorkflowError):
    """The actor's role does not own the milestone they tried to complete."""

    code = "permission_denied"
    status_code = 403


class OutOfOrderTransitionError(WorkflowError):
    """The targeted milestone is not the transaction's current milestone."""

    code = "out_of_order_transition"
    status_code = 409

    def __init__(self, message: str, expected_index: int | None = None, attempted_index: int | None = None):
        self.expected_index = expected_index
        self.attempted_index = attempted_index
        super().__init__(message)


class NoFurtherMilestonesError(WorkflowError):
    """Every milestone is already complete."""

    code = "no_further_milestones"
    status_code = 409


class InvalidTransitionError(WorkflowError):
    """A conveyancer invite was answered when it was no longer pending."""

    code = "invalid_transition"
    status_code = 409

    def __init__(self, message: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(message)


class AlreadyInvitedError(WorkflowError):
    """The seller or buyer has already been sent an account invite."""

    code = "already_invited"
    status_code = 409


class MissingContactError(WorkflowError):
    """The seller or buyer has no email address to invite."""

    code = "missing_contact"
    status_code = 422


class ProfileNotFoundError(WorkflowError):
    """No stored profile exists for the authenticated actor."""

    code = "profile_not_found"
    status_code = 404

    def __init__(self, actor_id: str):
        self.actor_id = actor_id
        super().__init__(f"No profile found for actor {actor_id}")


class EntityNotFoundError(WorkflowError):
    """A referenced transaction, conveyancer or invite does not exist."""

    code = "not_found"
    status_code = 404


class MalformedRecordError(WorkflowError):
    """A persisted row failed validation at the persistence boundary."""

    code = "malformed_record"
    status_code = 422
