import random

import networkx as nx
import pytest

from schemagraph.models.schema import (
    Column,
    LayoutOptions,
    SchemaEdge,
    SchemaGraph,
    SchemaNode,
    Table,
)
from schemagraph.services.graph_builder import edge_id, edge_label
from schemagraph.services.layout import (
    assign_ranks,
    attachment_sides,
    count_crossings,
    layout_graph,
    make_acyclic,
)


def node(node_id, columns=1):
    schema, name = node_id.split(".")
    table = Table(
        name=name,
        schema_name=schema,
        columns=[Column(name=f"c{i}", data_type="integer") for i in range(columns)],
    )
    return SchemaNode(id=node_id, label=name, table=table)


def edge(source, target, column="ref_id"):
    return SchemaEdge(
        id=edge_id(source, column, target),
        source=source,
        target=target,
        source_column=column,
        target_column="id",
        label=edge_label(column, "id"),
    )


def graph_of(node_ids, pairs):
    return SchemaGraph(
        nodes=[node(n) for n in node_ids],
        edges=[edge(s, t, f"col{i}") for i, (s, t) in enumerate(pairs)],
    )


def overlaps(a, b):
    return (
        a.position.x < b.position.x + b.width
        and b.position.x < a.position.x + a.width
        and a.position.y < b.position.y + b.height
        and b.position.y < a.position.y + a.height
    )


def assert_no_overlap(graph):
    for i, a in enumerate(graph.nodes):
        for b in graph.nodes[i + 1:]:
            assert not overlaps(a, b), f"{a.id} overlaps {b.id}"


def random_dag(size, seed):
    rng = random.Random(seed)
    ids = [f"public.t{i:02d}" for i in range(size)]
    pairs = []
    for j in range(1, size):
        for i in rng.sample(range(j), k=min(j, rng.randint(0, 3))):
            pairs.append((ids[i], ids[j]))
    return ids, pairs


# ─────────────────────────────────────────────────────────────────────────────
# Attachment Sides
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("source, target, expected", [
    ((0, 0), (0, 100), ("bottom", "top")),
    ((0, 100), (0, 0), ("top", "bottom")),
    ((0, 0), (100, 10), ("right", "left")),
    ((100, 0), (0, 10), ("left", "right")),
    ((0, 0), (50, 50), ("bottom", "top")),
])
def test_attachment_sides(source, target, expected):
    assert attachment_sides(source, target) == expected


# ─────────────────────────────────────────────────────────────────────────────
# Ranking
# ─────────────────────────────────────────────────────────────────────────────

def test_cycles_are_broken_deterministically():
    graph = nx.DiGraph([("a", "b"), ("b", "c"), ("c", "a")])

    dag = make_acyclic(graph)

    assert nx.is_directed_acyclic_graph(dag)
    assert sorted(dag.edges) == [("a", "b"), ("a", "c"), ("b", "c")]


def test_ranks_respect_edge_direction():
    dag = nx.DiGraph([("orders", "customers"), ("order_items", "orders"), ("order_items", "products")])

    rank = assign_ranks(dag)

    for u, v in dag.edges:
        assert rank[u] < rank[v]
    assert rank["order_items"] == 0
    assert rank["customers"] == 2


def test_count_crossings():
    layers = [["a", "b"], ["c", "d"]]
    assert count_crossings(layers, {"a": ["d"], "b": ["c"]}) == 1
    assert count_crossings(layers, {"a": ["c"], "b": ["d"]}) == 0


# ─────────────────────────────────────────────────────────────────────────────
# Layout
# ─────────────────────────────────────────────────────────────────────────────

def test_customers_and_orders_are_layered():
    graph = graph_of(["public.customers", "public.orders"], [("public.orders", "public.customers")])

    laid = layout_graph(graph)

    nodes = {n.id: n for n in laid.nodes}
    assert nodes["public.orders"].position.y < nodes["public.customers"].position.y
    assert laid.edges[0].source_side == "bottom"
    assert laid.edges[0].target_side == "top"
    assert laid.edges[0].label == "col0 → id"


def test_layout_is_independent_of_input_order():
    ids, pairs = random_dag(30, seed=7)
    pairs.append((ids[20], ids[3]))  # add a cycle

    first = layout_graph(graph_of(ids, pairs))

    shuffled_ids = list(ids)
    shuffled_pairs = list(enumerate(pairs))
    rng = random.Random(99)
    rng.shuffle(shuffled_ids)
    rng.shuffle(shuffled_pairs)
    shuffled = SchemaGraph(
        nodes=[node(n) for n in shuffled_ids],
        edges=[edge(s, t, f"col{i}") for i, (s, t) in shuffled_pairs],
    )
    second = layout_graph(shuffled)

    assert first.model_dump() == second.model_dump()


@pytest.mark.parametrize("size, seed", [(5, 1), (20, 2), (50, 3), (60, 4)])
def test_no_overlap_for_acyclic_graphs(size, seed):
    ids, pairs = random_dag(size, seed)

    laid = layout_graph(graph_of(ids, pairs))

    assert len(laid.nodes) == size
    assert_no_overlap(laid)


def test_no_overlap_with_column_driven_heights():
    ids, pairs = random_dag(25, seed=11)
    graph = SchemaGraph(
        nodes=[node(n, columns=(i % 7) * 3 + 1) for i, n in enumerate(ids)],
        edges=[edge(s, t, f"col{i}") for i, (s, t) in enumerate(pairs)],
    )

    laid = layout_graph(graph, LayoutOptions(fit_to_columns=True))

    assert_no_overlap(laid)
    tallest = max(n.height for n in laid.nodes)
    assert tallest == 40.0 + 24.0 * 19


def test_self_loop_does_not_break_ranking():
    graph = graph_of(
        ["hr.departments", "hr.employees"],
        [("hr.employees", "hr.employees"), ("hr.employees", "hr.departments")],
    )

    laid = layout_graph(graph)

    nodes = {n.id: n for n in laid.nodes}
    assert nodes["hr.employees"].position.y < nodes["hr.departments"].position.y
    loop = next(e for e in laid.edges if e.source == e.target)
    assert (loop.source_side, loop.target_side) == ("right", "top")


def test_cyclic_graph_completes():
    ids = ["public.a", "public.b", "public.c"]
    laid = layout_graph(graph_of(ids, [("public.a", "public.b"), ("public.b", "public.c"), ("public.c", "public.a")]))

    assert len(laid.nodes) == 3
    assert_no_overlap(laid)
    assert all(e.source_side and e.target_side for e in laid.edges)


def test_isolated_nodes_share_a_layer():
    options = LayoutOptions(margin=10, node_sep=30)
    laid = layout_graph(graph_of(["public.a", "public.b", "public.c"], []), options)

    assert {n.position.y for n in laid.nodes} == {10.0}
    assert [n.position.x for n in laid.nodes] == [10.0, 320.0, 630.0]
    assert laid.width == 630.0 + 280.0 + 10.0
    assert laid.height == 10.0 + 200.0 + 10.0


def test_left_to_right_direction():
    graph = graph_of(["public.customers", "public.orders"], [("public.orders", "public.customers")])

    laid = layout_graph(graph, LayoutOptions(direction="LR"))

    nodes = {n.id: n for n in laid.nodes}
    assert nodes["public.orders"].position.x < nodes["public.customers"].position.x
    assert nodes["public.orders"].position.y == nodes["public.customers"].position.y
    assert (laid.edges[0].source_side, laid.edges[0].target_side) == ("right", "left")


def test_layout_starts_at_margin():
    ids, pairs = random_dag(12, seed=5)

    laid = layout_graph(graph_of(ids, pairs), LayoutOptions(margin=25))

    assert min(n.position.x for n in laid.nodes) == 25.0
    assert min(n.position.y for n in laid.nodes) == 25.0


def test_empty_graph():
    laid = layout_graph(SchemaGraph())

    assert laid.nodes == []
    assert laid.width == 0.0


def test_input_graph_is_not_modified():
    graph = graph_of(["public.customers", "public.orders"], [("public.orders", "public.customers")])

    layout_graph(graph)

    assert all(n.position.x == 0 and n.position.y == 0 for n in graph.nodes)
    assert graph.edges[0].source_side is None
