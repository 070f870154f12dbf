from schemagraph.models.schema import Column, ColumnReference, SchemaModel, Table
from schemagraph.services.graph_builder import build_graph


def fk(name, table, column="id", schema=None):
    return Column(
        name=name,
        data_type="integer",
        is_foreign_key=True,
        references=ColumnReference(table=table, column=column, schema_name=schema),
    )


def pk(name="id"):
    return Column(name=name, data_type="integer", is_primary_key=True, is_nullable=False)


def shop_model():
    return SchemaModel(tables=[
        Table(name="customers", schema_name="public", columns=[pk(), Column(name="name", data_type="text")]),
        Table(name="orders", schema_name="public", columns=[pk(), fk("customer_id", "customers")]),
    ])


def test_one_node_per_table_and_one_edge_per_foreign_key():
    graph = build_graph(shop_model())

    assert [n.id for n in graph.nodes] == ["public.customers", "public.orders"]
    assert len(graph.edges) == 1

    edge = graph.edges[0]
    assert edge.source == "public.orders"
    assert edge.target == "public.customers"
    assert edge.label == "customer_id → id"
    assert edge.source_column == "customer_id"
    assert edge.target_column == "id"
    assert all(n.position.x == 0 and n.position.y == 0 for n in graph.nodes)


def test_edge_ids_are_deterministic():
    first = build_graph(shop_model())
    second = build_graph(shop_model())

    assert [e.id for e in first.edges] == [e.id for e in second.edges]
    assert first.edges[0].id == "public.orders-customer_id-public.customers"


def test_dangling_references_produce_no_edge():
    model = SchemaModel(tables=[
        Table(name="orders", schema_name="public", columns=[pk(), fk("customer_id", "customers")]),
        Table(name="audit", schema_name="public", columns=[fk("actor", "pg_authid", "oid", schema="pg_catalog")]),
    ])

    graph = build_graph(model)

    assert len(graph.nodes) == 2
    assert graph.edges == []


def test_counts_match_valid_foreign_keys():
    tables = [Table(name=f"t{i}", schema_name="public", columns=[pk()]) for i in range(10)]
    valid = 0
    for i in range(1, 10):
        tables[i].columns.append(fk("parent_id", f"t{i - 1}"))
        tables[i].columns.append(fk("missing_id", "nowhere"))
        valid += 1

    graph = build_graph(SchemaModel(tables=tables))

    assert len(graph.nodes) == 10
    assert len(graph.edges) == valid


def test_self_reference_is_one_edge():
    model = SchemaModel(tables=[
        Table(name="employees", schema_name="hr", columns=[pk(), fk("manager_id", "employees")]),
    ])

    graph = build_graph(model)

    assert len(graph.edges) == 1
    assert graph.edges[0].source == graph.edges[0].target == "hr.employees"


def test_reference_without_schema_uses_own_schema():
    model = SchemaModel(tables=[
        Table(name="accounts", schema_name="billing", columns=[pk()]),
        Table(name="invoices", schema_name="billing", columns=[fk("account_id", "accounts")]),
        Table(name="accounts", schema_name="public", columns=[pk()]),
    ])

    graph = build_graph(model)

    assert [e.target for e in graph.edges] == ["billing.accounts"]


def test_cross_schema_reference():
    model = SchemaModel(tables=[
        Table(name="users", schema_name="auth", columns=[pk()]),
        Table(name="posts", schema_name="public", columns=[fk("author_id", "users", schema="auth")]),
    ])

    graph = build_graph(model)

    assert [(e.source, e.target) for e in graph.edges] == [("public.posts", "auth.users")]


def test_unflagged_reference_is_ignored():
    column = fk("customer_id", "customers")
    column.is_foreign_key = False
    model = SchemaModel(tables=[
        Table(name="customers", schema_name="public", columns=[pk()]),
        Table(name="orders", schema_name="public", columns=[column]),
    ])

    assert build_graph(model).edges == []


def test_edge_ids_stay_unique_when_identifiers_contain_separators():
    model = SchemaModel(tables=[
        Table(name="t", schema_name="s", columns=[
            fk("a-p.b", "c", schema="q"),
            fk("a", "b-q.c", schema="p"),
        ]),
        Table(name="c", schema_name="q", columns=[pk()]),
        Table(name="b-q.c", schema_name="p", columns=[pk()]),
    ])

    ids = [e.id for e in build_graph(model).edges]

    assert len(ids) == 2
    assert len(set(ids)) == 2
    assert ids == ["s.t-a\\-p.b-q.c", "s.t-a-p.b\\-q.c"]
