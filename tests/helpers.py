"""Test helpers: a scripted stand-in for the miner jar and domain object builders."""

import sys
import textwrap

from hm_pipeline.core.types import Arc, ArcKind, Attribute, Event, PetriNet, Place, Transition

# Speaks the miner protocol. Special activities trigger failure modes; every
# other activity is appended to a chain-shaped Petri net kept for the process lifetime.
FAKE_MINER = textwrap.dedent(
    """
    import json
    import signal
    import sys
    import time

    activities = []
    stubborn = False

    def reply(body, status):
        sys.stdout.write(body + "\\n" + status + "\\n")
        sys.stdout.flush()

    while True:
        raw = sys.stdin.readline()
        if not raw:
            if stubborn:
                time.sleep(60)
            break
        event = json.loads(raw)
        activity = event["activity"]
        if activity == "CRASH":
            sys.exit(3)
        if activity == "CLOSE_BEFORE_STATUS":
            sys.stdout.write('{"type":"petri_net"}\\n\\n')
            sys.stdout.flush()
            sys.exit(0)
        if activity == "SLOW":
            time.sleep(float(event["attributes"].get("delay", 30)))
        if activity == "NO_RESULT":
            reply("", "false")
            continue
        if activity == "GARBAGE":
            reply("not a petri net\\n", "true")
            continue
        if activity == "IGNORE_TERM":
            signal.signal(signal.SIGTERM, signal.SIG_IGN)
            stubborn = True
        if activity not in activities:
            activities.append(activity)
        net = {
            "type": "petri_net",
            "places": [{"id": "p%d" % i} for i in range(len(activities) + 1)],
            "transitions": [{"id": "t_" + name, "label": name} for name in activities],
            "arcs": [
                arc
                for i, name in enumerate(activities)
                for arc in (
                    {"kind": "place_to_transition", "source": "p%d" % i, "target": "t_" + name},
                    {"kind": "transition_to_place", "source": "t_" + name, "target": "p%d" % (i + 1)},
                )
            ],
        }
        reply(json.dumps(net, indent=2) + "\\n", "true")
    """
)

LAUNCHER = (sys.executable, "-u")


def chain_net(activities: list[str]) -> PetriNet:
    """Build the net the fake miner reports after seeing ``activities`` in order."""

    arcs: list[Arc] = []
    for index, name in enumerate(activities):
        arcs.append(Arc(ArcKind.PLACE_TO_TRANSITION, f"p{index}", f"t_{name}"))
        arcs.append(Arc(ArcKind.TRANSITION_TO_PLACE, f"t_{name}", f"p{index + 1}"))
    return PetriNet(
        places=tuple(Place(f"p{index}") for index in range(len(activities) + 1)),
        transitions=tuple(Transition(f"t_{name}", name) for name in activities),
        arcs=tuple(arcs),
    )


def make_event(activity: str, case_id: str = "PAT-1000", department: str = "Cardiology", **extra: object) -> Event:
    attributes = [Attribute("department", department)]
    attributes.extend(Attribute(name, value) for name, value in extra.items())
    return Event(case_id=case_id, activity=activity, timestamp="1700000000000", attributes=tuple(attributes))
