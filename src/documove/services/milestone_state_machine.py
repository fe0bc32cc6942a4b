"""Milestone state machine — derives milestone status and authorizes advancement.

Pure logic, no I/O. The actor's role is always passed in explicitly; the
service layer resolves it and owns persistence.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from documove.domain.enums import InviteStatus, MilestoneOwner, MilestoneStatus, Role
from documove.domain.errors import (
    MalformedRecordError,
    NoFurtherMilestonesError,
    OutOfOrderTransitionError,
    PermissionDeniedError,
)
from documove.domain.milestones import DEFAULT_CATALOG, MilestoneCatalog, MilestoneDefinition
from documove.domain.schemas import ConveyancerInviteRecord, TransactionRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Ownership: which roles may complete a milestone owned by whom
# ---------------------------------------------------------------------------

OWNER_ROLES: dict[MilestoneOwner, set[Role]] = {
    MilestoneOwner.AGENT: {Role.AGENT},
    MilestoneOwner.CONVEYANCER: {Role.CONVEYANCER, Role.SOLICITOR},
}


class UnknownStagePolicy(str, Enum):
    """What to do when ``current_stage`` names no milestone in the catalog."""

    NOT_STARTED = "not_started"  # treat as nothing completed
    REJECT = "reject"  # raise MalformedRecordError


# ---------------------------------------------------------------------------
# Assignment gating policies
# ---------------------------------------------------------------------------


class AssignmentGatingPolicy(Protocol):
    """Decides whether a milestone may be completed given the current conveyancer invite."""

    needs_assignment: bool

    def permits(
        self, milestone: MilestoneDefinition, assignment: Optional[ConveyancerInviteRecord]
    ) -> bool:
        ...


class LenientAssignmentPolicy:
    """Never blocks: conveyancer-owned milestones are gated on role alone."""

    needs_assignment = False

    def permits(self, milestone, assignment) -> bool:
        return True


class AcceptedAssignmentPolicy:
    """Conveyancer-owned milestones require the current conveyancer invite to be accepted."""

    needs_assignment = True

    def permits(self, milestone, assignment) -> bool:
        if milestone.owner != MilestoneOwner.CONVEYANCER:
            return True
        return assignment is not None and assignment.status == InviteStatus.ACCEPTED


@dataclass(frozen=True)
class MilestoneProgress:
    """A milestone paired with its status for one transaction."""

    milestone: MilestoneDefinition
    status: MilestoneStatus


def progress_percentage(completed: int, total: int) -> int:
    """round(100 * completed / total), halves rounded up."""
    return (200 * completed + total) // (2 * total)


class MilestoneStateMachine:
    """Derives milestone status and validates milestone advancement."""

    def __init__(
        self,
        catalog: MilestoneCatalog = DEFAULT_CATALOG,
        unknown_stage_policy: UnknownStagePolicy = UnknownStagePolicy.NOT_STARTED,
        gating_policy: Optional[AssignmentGatingPolicy] = None,
    ):
        self.catalog = catalog
        self.unknown_stage_policy = unknown_stage_policy
        self.gating_policy = gating_policy or LenientAssignmentPolicy()

    @classmethod
    def from_settings(cls, settings) -> "MilestoneStateMachine":
        """Build a state machine with the policies named in the application settings."""
        gating = (
            AcceptedAssignmentPolicy()
            if settings.require_accepted_conveyancer
            else LenientAssignmentPolicy()
        )
        return cls(
            unknown_stage_policy=UnknownStagePolicy(settings.unknown_stage_policy),
            gating_policy=gating,
        )

    @property
    def needs_assignment(self) -> bool:
        return self.gating_policy.needs_assignment

    # -- derivation --------------------------------------------------------

    def completed_count(self, current_stage: Optional[str]) -> int:
        """Number of completed milestones implied by ``current_stage``."""
        if current_stage is None:
            return 0
        index = self.catalog.index_of(current_stage)
        if index is not None:
            return index + 1

        if self.unknown_stage_policy == UnknownStagePolicy.REJECT:
            raise MalformedRecordError(f"Unknown stage {current_stage!r}")
        logger.warning("Unknown stage %r, treating as not started", current_stage)
        return 0

    def current_index(self, current_stage: Optional[str]) -> Optional[int]:
        """Index of the milestone to complete next, or None when all are complete."""
        completed = self.completed_count(current_stage)
        if completed >= len(self.catalog):
            return None
        return completed

    def is_complete(self, current_stage: Optional[str]) -> bool:
        return self.current_index(current_stage) is None

    def derive_status(self, current_stage: Optional[str]) -> list[MilestoneProgress]:
        """Return completed / current / locked for every milestone in catalog order."""
        completed = self.completed_count(current_stage)
        results: list[MilestoneProgress] = []
        for i, milestone in enumerate(self.catalog):
            if i < completed:
                status = MilestoneStatus.COMPLETED
            elif i == completed:
                status = MilestoneStatus.CURRENT
            else:
                status = MilestoneStatus.LOCKED
            results.append(MilestoneProgress(milestone, status))
        return results

    def progress_for(self, current_stage: Optional[str]) -> int:
        return progress_percentage(self.completed_count(current_stage), len(self.catalog))

    # -- authorization -----------------------------------------------------

    def can_advance(
        self,
        milestone: MilestoneDefinition,
        role: Role,
        assignment: Optional[ConveyancerInviteRecord] = None,
    ) -> bool:
        """True if ``role`` owns ``milestone`` and the gating policy allows it."""
        return self.role_owns(milestone, role) and self.gating_policy.permits(milestone, assignment)

    @staticmethod
    def role_owns(milestone: MilestoneDefinition, role: Role) -> bool:
        if milestone.owner == MilestoneOwner.BOTH:
            return True
        return role in OWNER_ROLES.get(milestone.owner, set())

    def allowed_actions(
        self,
        current_stage: Optional[str],
        role: Role,
        assignment: Optional[ConveyancerInviteRecord] = None,
    ) -> list[str]:
        """Action labels ``role`` can trigger right now (at most the current milestone's)."""
        index = self.current_index(current_stage)
        if index is None:
            return []
        milestone = self.catalog[index]
        if self.can_advance(milestone, role, assignment):
            return [milestone.action_label]
        return []

    # -- transition --------------------------------------------------------

    def advance(
        self,
        transaction: TransactionRecord,
        milestone_index: int,
        role: Role,
        assignment: Optional[ConveyancerInviteRecord] = None,
    ) -> TransactionRecord:
        """Complete the milestone at ``milestone_index`` and return the updated record.

        Checks, in order:
        1. The transaction still has a milestone to complete.
        2. ``milestone_index`` is exactly the current milestone.
        3. ``role`` may complete that milestone.
        """
        current = self.current_index(transaction.current_stage)
        if current is None:
            raise NoFurtherMilestonesError(
                f"Transaction {transaction.id} has completed every milestone"
            )

        if milestone_index != current:
            raise OutOfOrderTransitionError(
                f"Milestone {milestone_index} cannot be completed; "
                f"the current milestone is {current} ({self.catalog[current].name})",
                expected_index=current,
                attempted_index=milestone_index,
            )

        milestone = self.catalog[milestone_index]
        if not self.role_owns(milestone, role):
            raise PermissionDeniedError(
                f"{milestone.name} is completed by the {milestone.owner.value}, not the {role.value}"
            )
        if not self.gating_policy.permits(milestone, assignment):
            raise PermissionDeniedError(
                f"{milestone.name} needs an accepted conveyancer before it can be completed"
            )

        return transaction.model_copy(update={
            "current_stage": milestone.name,
            "progress_percentage": progress_percentage(milestone_index + 1, len(self.catalog)),
        })
