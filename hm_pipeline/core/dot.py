"""Graphviz DOT rendering for mined Petri nets."""

from hm_pipeline.core.types import PetriNet

_GRAPH_NAME = "petriNet"


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_dot(net: PetriNet) -> str:
    """Render places as green circles, transitions as blue boxes and arcs as edges.

    Arcs whose endpoints are not declared nodes are skipped.
    """

    lines = [f"digraph {_quote(_GRAPH_NAME)} {{"]
    for place in net.places:
        lines.append(f'{_quote(place.id)} ["shape"="circle","color"="green"]')
    for transition in net.transitions:
        label = f',"label"={_quote(transition.label)}' if transition.label else ""
        lines.append(f'{_quote(transition.id)} ["shape"="box","color"="blue"{label}]')

    known = net.node_ids()
    for arc in net.arcs:
        if arc.source in known and arc.target in known:
            lines.append(f"{_quote(arc.source)} -> {_quote(arc.target)}")

    lines.append("}")
    return "\n".join(lines)
