import pytest

from dbstudio.api.builder_graph import (
    BuilderSessionNotFound, ColumnInfo, EndpointRole, QueryGraph, QueryGraphStore, parse_handle,
)


def test_add_table_always_creates_a_new_node():
    graph = QueryGraph()
    first = graph.add_table("employees", [{"name": "id", "type": "int", "key": "PRI"}])
    second = graph.add_table("employees", [{"name": "id", "type": "int", "key": "PRI"}])

    assert first != second
    nodes, _ = graph.snapshot()
    assert [node.table_name for node in nodes] == ["employees", "employees"]
    assert nodes[0].available_columns == (ColumnInfo("id", "int", "PRI"),)
    assert nodes[0].selected_columns == []


def test_toggle_column_flips_membership_in_selection_order():
    graph = QueryGraph()
    node_id = graph.add_table("users", ["id", "email", "name"])

    graph.toggle_column(node_id, "name")
    graph.toggle_column(node_id, "id")
    assert graph.get_node(node_id).selected_columns == ["name", "id"]

    graph.toggle_column(node_id, "name")
    assert graph.get_node(node_id).selected_columns == ["id"]


def test_toggle_on_unknown_node_is_a_no_op():
    graph = QueryGraph()
    graph.add_table("users")
    assert graph.toggle_column("missing", "id") is None


def test_delete_node_cascades_edges():
    graph = QueryGraph()
    a = graph.add_table("a")
    b = graph.add_table("b")
    c = graph.add_table("c")
    graph.connect(a, "id", b, "a_id")
    graph.connect(c, "b_id", b, "id")
    kept = graph.connect(a, "id", c, "a_id")

    assert graph.delete_node(b) is True

    nodes, edges = graph.snapshot()
    assert [node.id for node in nodes] == [a, c]
    assert [edge.id for edge in edges] == [kept]
    assert graph.delete_node(b) is False


def test_disconnect_removes_one_edge():
    graph = QueryGraph()
    a = graph.add_table("a")
    b = graph.add_table("b")
    first = graph.connect(a, "id", b, "a_id")
    second = graph.connect(a, "id", b, "a_id")

    assert graph.disconnect(first) is True
    assert [edge.id for edge in graph.snapshot()[1]] == [second]
    assert graph.disconnect(first) is False


def test_clear_removes_everything():
    graph = QueryGraph()
    a = graph.add_table("a")
    graph.connect(a, "id", a, "parent_id")
    graph.clear()
    assert graph.snapshot() == ((), ())
    assert len(graph) == 0


def test_snapshot_is_detached_from_later_mutation():
    graph = QueryGraph()
    node_id = graph.add_table("users")
    graph.toggle_column(node_id, "id")
    nodes, _ = graph.snapshot()

    graph.toggle_column(node_id, "email")
    graph.add_table("orders")

    assert len(nodes) == 1
    assert nodes[0].selected_columns == ["id"]


def test_connect_parses_handle_ids_into_roles():
    graph = QueryGraph()
    a = graph.add_table("a")
    b = graph.add_table("b")
    graph.connect(a, "id-target", b, "a_id-source")
    graph.connect(a, "id", b, "a_id")

    tagged, bare = graph.snapshot()[1]
    assert (tagged.source_column, tagged.source_role) == ("id", EndpointRole.TARGET)
    assert (tagged.target_column, tagged.target_role) == ("a_id", EndpointRole.SOURCE)
    assert (bare.source_column, bare.source_role) == ("id", EndpointRole.SOURCE)
    assert (bare.target_column, bare.target_role) == ("a_id", EndpointRole.TARGET)


def test_parse_handle_keeps_names_without_suffix():
    assert parse_handle("created_at", EndpointRole.SOURCE) == ("created_at", EndpointRole.SOURCE)
    assert parse_handle("user-source", EndpointRole.TARGET) == ("user", EndpointRole.SOURCE)
    assert parse_handle("-source", EndpointRole.TARGET) == ("-source", EndpointRole.TARGET)


def test_from_dict_rebuilds_canvas_json():
    graph = QueryGraph.from_dict({
        "nodes": [
            {"id": "users-1", "label": "users", "columns": [{"name": "id", "type": "int", "key": "PRI"}],
             "selectedColumns": ["id"]},
            {"id": "orders-2", "tableName": "orders", "columns": ["user_id", "total"],
             "selectedColumns": ["total"]},
        ],
        "edges": [
            {"id": "e1", "source": "users-1", "sourceHandle": "id-source",
             "target": "orders-2", "targetHandle": "user_id-target"},
        ],
    })

    assert graph.to_dict() == {
        "nodes": [
            {"id": "users-1", "tableName": "users",
             "columns": [{"name": "id", "type": "int", "key": "PRI"}], "selectedColumns": ["id"]},
            {"id": "orders-2", "tableName": "orders",
             "columns": [{"name": "user_id", "type": "", "key": ""}, {"name": "total", "type": "", "key": ""}],
             "selectedColumns": ["total"]},
        ],
        "edges": [
            {"id": "e1", "source": "users-1", "sourceHandle": "id-source",
             "target": "orders-2", "targetHandle": "user_id-target"},
        ],
    }


def test_from_dict_requires_table_names():
    with pytest.raises(ValueError):
        QueryGraph.from_dict({"nodes": [{"id": "x"}]})


def test_store_creates_and_discards_sessions():
    store = QueryGraphStore()
    session_id = store.create()
    assert isinstance(store.get(session_id), QueryGraph)
    assert len(store) == 1

    store.discard(session_id)
    with pytest.raises(BuilderSessionNotFound):
        store.get(session_id)
    with pytest.raises(BuilderSessionNotFound):
        store.discard(session_id)


def test_from_dict_keeps_repeated_selection():
    graph = QueryGraph.from_dict({
        "nodes": [{"id": "u", "tableName": "users", "columns": ["id"], "selectedColumns": ["id", "id"]}],
    })
    assert graph.get_node("u").selected_columns == ["id"]
    assert graph.compile() == "SELECT\n  `users`.`id`\nFROM\n  `users`;"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_store_evicts_idle_sessions():
    clock = FakeClock()
    store = QueryGraphStore(ttl=60, clock=clock)
    idle = store.create()
    clock.now = 50
    active = store.create()
    clock.now = 100
    store.get(active)

    assert len(store) == 1
    with pytest.raises(BuilderSessionNotFound):
        store.get(idle)

    clock.now = 155
    assert isinstance(store.get(active), QueryGraph)


def test_store_drops_least_recently_used_beyond_limit():
    clock = FakeClock()
    store = QueryGraphStore(max_sessions=2, clock=clock)
    first = store.create()
    second = store.create()
    store.get(first)
    store.create()

    assert len(store) == 2
    assert isinstance(store.get(first), QueryGraph)
    with pytest.raises(BuilderSessionNotFound):
        store.get(second)


def test_store_stays_bounded_under_many_creates():
    store = QueryGraphStore(max_sessions=100)
    for _ in range(1000):
        store.create()
    assert len(store) == 100
