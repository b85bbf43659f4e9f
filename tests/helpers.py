"""Graph definition builders shared by the engine tests (stored camelCase format)."""

from pam_engines.pam import parse


def factor(node_id, value=None, series=None, **config):
    cfg = dict(config)
    if value is not None:
        cfg["value"] = value
    if series is not None:
        cfg["series"] = series
    return {"id": node_id, "type": "factor", "config": cfg}


def node(node_id, node_type, **config):
    return {"id": node_id, "type": node_type, "config": config}


def edge(source, target):
    return {"from": source, "to": target}


def graph_of(nodes, edges, output):
    return parse({"nodes": list(nodes), "edges": list(edges), "output": output})


def controls_graph(calculated, base, **controls):
    """Factor(calculated) and Factor(base) feeding one Controls node."""
    return graph_of(
        [
            factor("calc", str(calculated)),
            factor("base", str(base)),
            node("ctl", "controls", **controls),
        ],
        [edge("calc", "ctl"), edge("base", "ctl")],
        "ctl",
    )

