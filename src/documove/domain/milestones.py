"""Milestone catalog: the fixed, ordered lifecycle every transaction moves through.

The catalog is static configuration shared by every transaction type. A
transaction links to it only through ``Transaction.current_stage``, which holds
the name of the last completed milestone.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from documove.domain.enums import MilestoneOwner


@dataclass(frozen=True)
class MilestoneDefinition:
    """One step of the transaction lifecycle."""

    position: int
    name: str
    description: str
    owner: MilestoneOwner
    action_label: str


class MilestoneCatalog:
    """Immutable, ordered collection of milestone definitions with unique names."""

    def __init__(self, milestones: Iterable[MilestoneDefinition]):
        self._milestones: tuple[MilestoneDefinition, ...] = tuple(milestones)
        if not self._milestones:
            raise ValueError("A milestone catalog needs at least one milestone")

        self._index: dict[str, int] = {}
        for i, milestone in enumerate(self._milestones):
            if milestone.position != i:
                raise ValueError(
                    f"Milestone {milestone.name!r} has position {milestone.position}, expected {i}"
                )
            if milestone.name in self._index:
                raise ValueError(f"Duplicate milestone name {milestone.name!r}")
            self._index[milestone.name] = i

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, MilestoneOwner]]) -> "MilestoneCatalog":
        """Build a catalog from (name, owner) pairs, deriving labels from the name."""
        return cls(
            MilestoneDefinition(
                position=i,
                name=name,
                description=name,
                owner=owner,
                action_label=f"Complete {name}",
            )
            for i, (name, owner) in enumerate(pairs)
        )

    def index_of(self, name: Optional[str]) -> Optional[int]:
        """Position of the milestone called ``name``, or None if there is no such milestone."""
        if name is None:
            return None
        return self._index.get(name)

    @property
    def names(self) -> list[str]:
        return [m.name for m in self._milestones]

    def __len__(self) -> int:
        return len(self._milestones)

    def __getitem__(self, index: int) -> MilestoneDefinition:
        return self._milestones[index]

    def __iter__(self) -> Iterator[MilestoneDefinition]:
        return iter(self._milestones)


# ---------------------------------------------------------------------------
# Default UK conveyancing lifecycle
# ---------------------------------------------------------------------------

O = MilestoneOwner

DEFAULT_CATALOG = MilestoneCatalog([
    MilestoneDefinition(
        0, "Instruction Received",
        "The estate agent has been instructed and the property is under management.",
        O.AGENT, "Confirm instruction",
    ),
    MilestoneDefinition(
        1, "Offer Accepted",
        "The seller has accepted an offer and the sale is agreed subject to contract.",
        O.AGENT, "Mark offer accepted",
    ),
    MilestoneDefinition(
        2, "ID Verification",
        "Identity and anti-money-laundering checks on the client are complete.",
        O.CONVEYANCER, "Confirm ID checks",
    ),
    MilestoneDefinition(
        3, "Searches Ordered",
        "Local authority, water, drainage and environmental searches have been ordered.",
        O.CONVEYANCER, "Mark searches ordered",
    ),
    MilestoneDefinition(
        4, "Search Results",
        "All search results are back and have been reviewed.",
        O.CONVEYANCER, "Confirm search results",
    ),
    MilestoneDefinition(
        5, "Contract Pack Sent",
        "The draft contract, title documents and property forms have been issued.",
        O.CONVEYANCER, "Mark contract pack sent",
    ),
    MilestoneDefinition(
        6, "Enquiries Raised",
        "Pre-contract enquiries have been raised and answered.",
        O.CONVEYANCER, "Mark enquiries resolved",
    ),
    MilestoneDefinition(
        7, "Mortgage Offer",
        "The buyer's lender has issued a formal mortgage offer, or the buyer is a cash buyer.",
        O.BOTH, "Confirm mortgage offer",
    ),
    MilestoneDefinition(
        8, "Exchange of Contracts",
        "Contracts are exchanged and the completion date is legally binding.",
        O.CONVEYANCER, "Confirm exchange",
    ),
    MilestoneDefinition(
        9, "Completion",
        "Funds have transferred and the keys have been released.",
        O.BOTH, "Confirm completion",
    ),
])
