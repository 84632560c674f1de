"""Codec tests for event and Petri net wire forms."""

import json

import pytest

from helpers import chain_net, make_event
from hm_pipeline.core.dot import render_dot
from hm_pipeline.core.serialization import (
    SerializationError,
    deserialize_event,
    deserialize_petri_net,
    serialize_event,
    serialize_petri_net,
)
from hm_pipeline.core.types import Arc, ArcKind, PetriNet, Place, Transition


def test_event_wire_form_is_single_line() -> None:
    """Embedded newlines in values are escaped, never emitted raw."""

    event = make_event("NOTE\nWITH BREAK", doctor="Dr.A", severity=3)

    line = serialize_event(event)

    assert "\n" not in line
    payload = json.loads(line)
    assert payload["type"] == "event"
    assert payload["attributes"] == {"department": "Cardiology", "doctor": "Dr.A", "severity": 3}
    assert deserialize_event(line) == event


def test_event_attribute_lookup() -> None:
    """Attributes are looked up by name."""

    event = make_event("TRIAGE", department="Emergency")

    assert event.attribute("department") == "Emergency"
    assert event.attribute("missing") is None


def test_petri_net_accepts_pretty_printed_payload() -> None:
    """The miner may spread one net over several lines."""

    net = chain_net(["ADMISSION", "DISCHARGE"])
    pretty = json.dumps(json.loads(serialize_petri_net(net)), indent=2)

    assert deserialize_petri_net(pretty) == net


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "[]",
        '{"type":"event","case_id":"x","activity":"y"}',
        '{"type":"petri_net","places":[{"name":"p0"}]}',
        '{"type":"petri_net","arcs":[{"kind":"diagonal","source":"a","target":"b"}]}',
        '{"type":"petri_net","transitions":["t1"]}',
    ],
)
def test_malformed_petri_net_raises(text: str) -> None:
    """Anything that is not a well-formed net raises SerializationError."""

    with pytest.raises(SerializationError):
        deserialize_petri_net(text)


def test_malformed_event_raises() -> None:
    """Events need string case ids and activities."""

    with pytest.raises(SerializationError):
        deserialize_event('{"type":"event","case_id":7,"activity":"A"}')


def test_render_dot_draws_known_nodes_and_arcs() -> None:
    """Places are circles, transitions boxes, and dangling arcs are skipped."""

    net = PetriNet(
        places=(Place("p0"), Place("p1")),
        transitions=(Transition("t_a", "A"),),
        arcs=(
            Arc(ArcKind.PLACE_TO_TRANSITION, "p0", "t_a"),
            Arc(ArcKind.TRANSITION_TO_PLACE, "t_a", "p1"),
            Arc(ArcKind.TRANSITION_TO_PLACE, "t_a", "p_unknown"),
        ),
    )

    dot = render_dot(net)

    assert dot.startswith('digraph "petriNet" {')
    assert '"p0" ["shape"="circle","color"="green"]' in dot
    assert '"t_a" ["shape"="box","color"="blue","label"="A"]' in dot
    assert '"p0" -> "t_a"' in dot
    assert '"t_a" -> "p1"' in dot
    assert "p_unknown" not in dot
    assert dot.endswith("}")
