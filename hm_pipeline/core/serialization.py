"""Compact JSON-line codecs for events and Petri nets exchanged between stages."""

import json
from typing import Any

from hm_pipeline.core.types import Arc, ArcKind, Attribute, Event, PetriNet, Place, Transition


class SerializationError(ValueError):
    """Raised when a payload cannot be decoded into the expected domain object."""


def _dumps(payload: dict[str, Any]) -> str:
    # json.dumps escapes control characters, so the output is always a single line.
    return json.dumps(payload, ensure_ascii=True, separators=(",", ":"))


def _loads_object(text: str, expected_type: str) -> dict[str, Any]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SerializationError(f"invalid json for {expected_type}: {exc}") from exc

    if not isinstance(payload, dict):
        raise SerializationError(f"{expected_type} payload must be an object")
    if payload.get("type") != expected_type:
        raise SerializationError(f"expected type {expected_type!r}, got {payload.get('type')!r}")
    return payload


def _require_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise SerializationError(f"field {key!r} must be a string")
    return value


def event_to_dict(event: Event) -> dict[str, Any]:
    return {
        "type": "event",
        "case_id": event.case_id,
        "activity": event.activity,
        "timestamp": event.timestamp,
        "attributes": {attribute.name: attribute.value for attribute in event.attributes},
    }


def serialize_event(event: Event) -> str:
    """Return the one-line wire form of an event."""

    return _dumps(event_to_dict(event))


def deserialize_event(text: str) -> Event:
    """Decode an event line produced by :func:`serialize_event`."""

    payload = _loads_object(text, "event")
    raw_attributes = payload.get("attributes") or {}
    if not isinstance(raw_attributes, dict):
        raise SerializationError("field 'attributes' must be an object")

    return Event(
        case_id=_require_str(payload, "case_id"),
        activity=_require_str(payload, "activity"),
        timestamp=str(payload.get("timestamp", "")),
        attributes=tuple(Attribute(name=str(name), value=value) for name, value in raw_attributes.items()),
    )


def petri_net_to_dict(net: PetriNet) -> dict[str, Any]:
    return {
        "type": "petri_net",
        "places": [{"id": place.id} for place in net.places],
        "transitions": [{"id": transition.id, "label": transition.label} for transition in net.transitions],
        "arcs": [{"kind": arc.kind.value, "source": arc.source, "target": arc.target} for arc in net.arcs],
    }


def serialize_petri_net(net: PetriNet) -> str:
    """Return the one-line wire form of a Petri net."""

    return _dumps(petri_net_to_dict(net))


def deserialize_petri_net(text: str) -> PetriNet:
    """Decode a Petri net, accepting the miner's possibly multi-line output."""

    payload = _loads_object(text.strip(), "petri_net")

    try:
        places = tuple(Place(id=_require_str(item, "id")) for item in payload.get("places") or [])
        transitions = tuple(
            Transition(id=_require_str(item, "id"), label=str(item.get("label", "")))
            for item in payload.get("transitions") or []
        )
        arcs = tuple(
            Arc(
                kind=ArcKind(item.get("kind")),
                source=_require_str(item, "source"),
                target=_require_str(item, "target"),
            )
            for item in payload.get("arcs") or []
        )
    except SerializationError:
        raise
    except (AttributeError, TypeError, ValueError) as exc:
        raise SerializationError(f"invalid petri_net payload: {exc}") from exc

    return PetriNet(places=places, transitions=transitions, arcs=arcs)
