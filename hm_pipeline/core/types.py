"""Shared lightweight types to keep module interfaces explicit and typed."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True, slots=True)
class Attribute:
    """Named event attribute such as department or severity."""

    name: str
    value: Any


@dataclass(frozen=True, slots=True)
class Event:
    """Single process event belonging to one case."""

    case_id: str
    activity: str
    timestamp: str
    attributes: tuple[Attribute, ...] = ()

    def attribute(self, name: str) -> Any | None:
        """Return the value of the first attribute called ``name``, if any."""

        for attribute in self.attributes:
            if attribute.name == name:
                return attribute.value
        return None


@dataclass(frozen=True, slots=True)
class Place:
    """Petri net place."""

    id: str


@dataclass(frozen=True, slots=True)
class Transition:
    """Petri net transition, labelled with the activity it represents."""

    id: str
    label: str = ""


class ArcKind(str, Enum):
    """Direction of a flow-relation arc."""

    PLACE_TO_TRANSITION = "place_to_transition"
    TRANSITION_TO_PLACE = "transition_to_place"


@dataclass(frozen=True, slots=True)
class Arc:
    """Flow-relation arc between a place and a transition."""

    kind: ArcKind
    source: str
    target: str


@dataclass(frozen=True, slots=True)
class PetriNet:
    """Process model produced by the miner for the events seen so far."""

    places: tuple[Place, ...] = ()
    transitions: tuple[Transition, ...] = ()
    arcs: tuple[Arc, ...] = field(default=())

    def node_ids(self) -> set[str]:
        return {place.id for place in self.places} | {transition.id for transition in self.transitions}
