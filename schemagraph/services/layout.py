# layout.py
"""
Layered (Sugiyama-style) layout for the schema graph.

    1. break cycles by reversing DFS back edges
    2. rank nodes by longest path, referencing tables above referenced ones
    3. split long edges with zero-width dummy nodes
    4. order each layer by barycenter sweeps, keeping the fewest crossings
    5. place nodes along each layer without overlap, then stack the layers

Every step iterates in id order, so equal inputs give equal output whatever
order the nodes and edges arrive in.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

import networkx as nx

from schemagraph.models.schema import (
    LayoutOptions,
    Position,
    SchemaEdge,
    SchemaGraph,
    SchemaNode,
    Side,
)

logger = logging.getLogger(__name__)

DUMMY_PREFIX = "\x00"


# ─────────────────────────────────────────────────────────────────────────────
# Attachment Sides
# ─────────────────────────────────────────────────────────────────────────────

def attachment_sides(
    source_center: Tuple[float, float],
    target_center: Tuple[float, float],
) -> Tuple[Side, Side]:
    """
    Pick the sides an edge leaves the source and enters the target through,
    each facing the other node along the dominant axis.
    """
    dx = target_center[0] - source_center[0]
    dy = target_center[1] - source_center[1]

    if abs(dy) >= abs(dx):
        if dy > 0:
            return "bottom", "top"
        return "top", "bottom"
    if dx > 0:
        return "right", "left"
    return "left", "right"


SELF_LOOP_SIDES: Tuple[Side, Side] = ("right", "top")


# ─────────────────────────────────────────────────────────────────────────────
# Ranking
# ─────────────────────────────────────────────────────────────────────────────

def _back_edges(graph: nx.DiGraph) -> Set[Tuple[str, str]]:
    """Back edges of an iterative DFS visiting roots and successors in id order."""
    on_stack, done = 1, 2
    state: Dict[str, int] = {}
    back: Set[Tuple[str, str]] = set()

    for root in sorted(graph.nodes):
        if root in state:
            continue
        state[root] = on_stack
        stack = [(root, iter(sorted(graph.successors(root))))]
        while stack:
            node, children = stack[-1]
            for child in children:
                seen = state.get(child)
                if seen is None:
                    state[child] = on_stack
                    stack.append((child, iter(sorted(graph.successors(child)))))
                    break
                if seen == on_stack:
                    back.add((node, child))
            else:
                state[node] = done
                stack.pop()

    return back


def make_acyclic(graph: nx.DiGraph) -> nx.DiGraph:
    """Copy of `graph` (self-loops removed) with every DFS back edge reversed."""
    back = _back_edges(graph)
    dag = nx.DiGraph()
    dag.add_nodes_from(sorted(graph.nodes))
    for u, v in sorted(graph.edges):
        if u == v:
            continue
        dag.add_edge(*((v, u) if (u, v) in back else (u, v)))
    return dag


def assign_ranks(dag: nx.DiGraph) -> Dict[str, int]:
    """
    Longest-path ranking: every edge points to a strictly higher rank.
    Sources are then pulled down next to their nearest successor to
    shorten their edges.
    """
    rank: Dict[str, int] = {}
    for node in nx.lexicographical_topological_sort(dag):
        rank[node] = max((rank[p] + 1 for p in dag.predecessors(node)), default=0)

    for node in sorted(dag.nodes):
        if dag.in_degree(node) == 0 and dag.out_degree(node) > 0:
            rank[node] = min(rank[s] for s in dag.successors(node)) - 1

    return rank


# ─────────────────────────────────────────────────────────────────────────────
# Layer Ordering
# ─────────────────────────────────────────────────────────────────────────────

def _is_dummy(node: str) -> bool:
    return node.startswith(DUMMY_PREFIX)


def _build_layers(
    dag: nx.DiGraph,
    rank: Dict[str, int],
) -> Tuple[List[List[str]], Dict[str, List[str]], Dict[str, List[str]]]:
    """Layers plus up/down adjacency, with dummy nodes on edges spanning several ranks."""
    depth = max(rank.values(), default=-1) + 1
    layers: List[List[str]] = [[] for _ in range(depth)]
    for node in sorted(dag.nodes):
        layers[rank[node]].append(node)

    up: Dict[str, List[str]] = defaultdict(list)
    down: Dict[str, List[str]] = defaultdict(list)
    for u, v in sorted(dag.edges):
        chain = [u]
        for step in range(1, rank[v] - rank[u]):
            dummy = f"{DUMMY_PREFIX}{u}{DUMMY_PREFIX}{v}{DUMMY_PREFIX}{step}"
            layers[rank[u] + step].append(dummy)
            chain.append(dummy)
        chain.append(v)
        for a, b in zip(chain, chain[1:]):
            down[a].append(b)
            up[b].append(a)

    return layers, up, down


def count_crossings(layers: List[List[str]], down: Dict[str, List[str]]) -> int:
    total = 0
    for upper, lower in zip(layers, layers[1:]):
        lower_pos = {node: i for i, node in enumerate(lower)}
        ends = sorted(
            (i, lower_pos[target])
            for i, node in enumerate(upper)
            for target in down.get(node, ())
        )
        for a in range(len(ends)):
            for b in range(a + 1, len(ends)):
                if ends[a][0] < ends[b][0] and ends[a][1] > ends[b][1]:
                    total += 1
    return total


def _barycenter_order(
    layer: List[str],
    neighbors: Dict[str, List[str]],
    fixed: List[str],
) -> List[str]:
    fixed_pos = {node: i for i, node in enumerate(fixed)}

    def key(item: Tuple[int, str]) -> Tuple[float, int]:
        index, node = item
        adjacent = neighbors.get(node)
        if not adjacent:
            return float(index), index
        return sum(fixed_pos[n] for n in adjacent) / len(adjacent), index

    return [node for _, node in sorted(enumerate(layer), key=key)]


def order_layers(
    layers: List[List[str]],
    up: Dict[str, List[str]],
    down: Dict[str, List[str]],
    sweeps: int,
) -> List[List[str]]:
    """Alternate down and up barycenter sweeps; return the ordering with the fewest crossings."""
    current = [list(layer) for layer in layers]
    best = [list(layer) for layer in current]
    best_crossings = count_crossings(best, down)

    for _ in range(sweeps):
        if best_crossings == 0:
            break
        for i in range(1, len(current)):
            current[i] = _barycenter_order(current[i], up, current[i - 1])
        for i in range(len(current) - 2, -1, -1):
            current[i] = _barycenter_order(current[i], down, current[i + 1])

        crossings = count_crossings(current, down)
        if crossings < best_crossings:
            best = [list(layer) for layer in current]
            best_crossings = crossings

    return best


# ─────────────────────────────────────────────────────────────────────────────
# Coordinates
# ─────────────────────────────────────────────────────────────────────────────

def _place_layer(
    layer: List[str],
    desired: List[float],
    breadth: Dict[str, float],
    options: LayoutOptions,
) -> List[float]:
    """
    Centers as close to `desired` as the minimum gaps allow. Averaging a
    left-to-right and a right-to-left packing keeps every gap satisfied.
    """
    def gap(a: str, b: str) -> float:
        sep = options.edge_sep if _is_dummy(a) or _is_dummy(b) else options.node_sep
        return (breadth[a] + breadth[b]) / 2 + sep

    size = len(layer)
    left = list(desired)
    for i in range(1, size):
        left[i] = max(desired[i], left[i - 1] + gap(layer[i - 1], layer[i]))
    right = list(desired)
    for i in range(size - 2, -1, -1):
        right[i] = min(desired[i], right[i + 1] - gap(layer[i], layer[i + 1]))

    return [(lo + hi) / 2 for lo, hi in zip(left, right)]


def assign_coordinates(
    layers: List[List[str]],
    up: Dict[str, List[str]],
    down: Dict[str, List[str]],
    breadth: Dict[str, float],
    options: LayoutOptions,
) -> Dict[str, float]:
    """Center of every node along the in-layer axis."""
    center: Dict[str, float] = {}
    for layer in layers:
        center.update(zip(layer, _place_layer(layer, [0.0] * len(layer), breadth, options)))

    def realign(layer: List[str], neighbors: Dict[str, List[str]]) -> None:
        desired = []
        for node in layer:
            adjacent = neighbors.get(node)
            if adjacent:
                desired.append(sum(center[n] for n in adjacent) / len(adjacent))
            else:
                desired.append(center[node])
        center.update(zip(layer, _place_layer(layer, desired, breadth, options)))

    for _ in range(max(options.sweeps, 1)):
        for i in range(1, len(layers)):
            realign(layers[i], up)
        for i in range(len(layers) - 2, -1, -1):
            realign(layers[i], down)

    return center


def node_size(node: SchemaNode, options: LayoutOptions) -> Tuple[float, float]:
    height = options.node_height
    if options.fit_to_columns:
        fitted = options.header_height + options.row_height * len(node.table.columns)
        height = max(height, fitted)
    return options.node_width, height


# ─────────────────────────────────────────────────────────────────────────────
# Layout
# ─────────────────────────────────────────────────────────────────────────────

def layout_graph(graph: SchemaGraph, options: Optional[LayoutOptions] = None) -> SchemaGraph:
    """
    Position every node and give every edge its attachment sides.

    Positions are top-left corners. The result lists nodes and edges in id
    order; the input graph is not modified.
    """
    options = options or LayoutOptions()
    if not graph.nodes:
        return SchemaGraph(edges=[edge.model_copy() for edge in sorted(graph.edges, key=lambda e: e.id)])

    nodes = {node.id: node for node in sorted(graph.nodes, key=lambda n: n.id)}
    edges = sorted(graph.edges, key=lambda e: e.id)

    directed = nx.DiGraph()
    directed.add_nodes_from(nodes)
    for edge in edges:
        if edge.source in nodes and edge.target in nodes and edge.source != edge.target:
            directed.add_edge(edge.source, edge.target)

    dag = make_acyclic(directed)
    rank = assign_ranks(dag)
    layers, up, down = _build_layers(dag, rank)
    layers = order_layers(layers, up, down, options.sweeps)

    horizontal = options.direction == "LR"
    sizes = {node_id: node_size(node, options) for node_id, node in nodes.items()}
    # breadth runs along a layer, depth across layers
    breadth: Dict[str, float] = {}
    depth: Dict[str, float] = {}
    for layer in layers:
        for node_id in layer:
            if _is_dummy(node_id):
                breadth[node_id], depth[node_id] = 0.0, 0.0
                continue
            width, height = sizes[node_id]
            breadth[node_id], depth[node_id] = (height, width) if horizontal else (width, height)

    center = assign_coordinates(layers, up, down, breadth, options)

    shift = options.margin - min(center[n] - breadth[n] / 2 for n in nodes)

    layer_start: List[float] = []
    layer_depth: List[float] = []
    offset = options.margin
    for layer in layers:
        thickness = max((depth[n] for n in layer if not _is_dummy(n)), default=0.0)
        layer_start.append(offset)
        layer_depth.append(thickness)
        offset += thickness + options.rank_sep

    positioned: Dict[str, SchemaNode] = {}
    centers: Dict[str, Tuple[float, float]] = {}
    for node_id, node in nodes.items():
        width, height = sizes[node_id]
        r = rank[node_id]
        along = round(center[node_id] - breadth[node_id] / 2 + shift, 2)
        across = round(layer_start[r] + (layer_depth[r] - depth[node_id]) / 2, 2)
        x, y = (across, along) if horizontal else (along, across)
        positioned[node_id] = node.model_copy(update={
            "position": Position(x=x, y=y),
            "width": width,
            "height": height,
        })
        centers[node_id] = (x + width / 2, y + height / 2)

    laid_edges: List[SchemaEdge] = []
    for edge in edges:
        if edge.source not in centers or edge.target not in centers:
            laid_edges.append(edge.model_copy())
            continue
        if edge.source == edge.target:
            source_side, target_side = SELF_LOOP_SIDES
        else:
            source_side, target_side = attachment_sides(centers[edge.source], centers[edge.target])
        laid_edges.append(edge.model_copy(update={
            "source_side": source_side,
            "target_side": target_side,
        }))

    canvas_width = max(n.position.x + n.width for n in positioned.values()) + options.margin
    canvas_height = max(n.position.y + n.height for n in positioned.values()) + options.margin

    logger.debug(
        "Laid out %d nodes in %d layers (%d edges)",
        len(positioned), len(layers), len(laid_edges),
    )

    return SchemaGraph(
        nodes=list(positioned.values()),
        edges=laid_edges,
        width=canvas_width,
        height=canvas_height,
    )
