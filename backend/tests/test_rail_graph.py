from __future__ import annotations

from smartroute.models import Connection
from smartroute.rail_graph import RailGraph
from smartroute.registry import default_registry


def _train(a: str, b: str, km: float) -> Connection:
    return Connection(
        id=f"train-{a}-{b}",
        type="train",
        from_city_id=a,
        to_city_id=b,
        distance_km=km,
        duration_min=km,
        base_price=km * 2,
    )


def test_transfer_ceiling_on_shipped_network() -> None:
    graph = RailGraph(default_registry().connections)
    # nizhny-bestyakh -> tommot -> aldan -> tynda -> skovorodino -> moscow
    assert graph.find_shortest_path("nizhny-bestyakh", "moscow", max_transfers=3) is None

    path = graph.find_shortest_path("nizhny-bestyakh", "moscow", max_transfers=4)
    assert path is not None
    assert path.path == ("nizhny-bestyakh", "tommot", "aldan", "tynda", "skovorodino", "moscow")
    assert path.transfers == 4
    assert path.total_distance_km == 6500
    assert path.total_duration_min == 180 + 90 + 480 + 180 + 4320


def test_edges_are_directed() -> None:
    graph = RailGraph(default_registry().connections)
    assert graph.has_connection("tommot", "aldan")
    assert not graph.has_connection("aldan", "tommot")
    assert graph.find_shortest_path("moscow", "tommot") is None


def test_fewer_legs_win_when_shortest_breaks_the_ceiling() -> None:
    graph = RailGraph(
        [
            _train("a", "b", 100),
            _train("b", "c", 100),
            _train("c", "d", 100),
            _train("a", "d", 1_000),
        ]
    )
    shortest = graph.find_shortest_path("a", "d", max_transfers=5)
    assert shortest is not None
    assert shortest.path == ("a", "b", "c", "d")
    assert shortest.total_distance_km == 300

    direct = graph.find_shortest_path("a", "d", max_transfers=0)
    assert direct is not None
    assert direct.path == ("a", "d")
    assert direct.transfers == 0


def test_keeps_shortest_parallel_edge_and_ignores_other_modes() -> None:
    bus = Connection(
        id="bus-a-b",
        type="bus",
        from_city_id="a",
        to_city_id="b",
        distance_km=10,
        duration_min=10,
        base_price=100,
    )
    graph = RailGraph([_train("a", "b", 300), _train("a", "b", 250), bus])
    edge = graph.get_connection("a", "b")
    assert edge is not None
    assert edge.type == "train"
    assert edge.distance_km == 250
    assert [c.to_city_id for c in graph.connections_from("a")] == ["b"]
    assert [c.from_city_id for c in graph.connections_to("b")] == ["a"]


def test_same_station_is_an_empty_path() -> None:
    path = RailGraph([]).find_shortest_path("a", "a")
    assert path is not None
    assert path.path == ("a",)
    assert path.transfers == 0
