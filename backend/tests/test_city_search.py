from __future__ import annotations

from smartroute.city_search import normalise_query, search_cities
from smartroute.registry import default_registry


def test_exact_name_ranks_first() -> None:
    hits = search_cities(default_registry(), "Якутск")
    assert hits[0].city_id == "yakutsk"
    assert hits[0].match == "exact"
    assert hits[0].score == 1.0
    assert hits[0].formats["short"] == "Якутск"


def test_synonym_and_prefix_matches() -> None:
    registry = default_registry()
    synonym = search_cities(registry, "yak")
    assert synonym[0].city_id == "yakutsk"
    assert synonym[0].match == "synonym"

    prefix = search_cities(registry, "як")
    assert prefix[0].city_id == "yakutsk"
    assert prefix[0].match == "prefix"


def test_region_query_orders_by_population() -> None:
    hits = search_cities(default_registry(), "якутия", limit=50)
    assert hits
    assert {hit.match for hit in hits} == {"region"}
    assert hits[0].city_id == "yakutsk"
    assert "moscow" not in {hit.city_id for hit in hits}


def test_limit_and_empty_query() -> None:
    registry = default_registry()
    assert len(search_cities(registry, "якутия", limit=2)) == 2
    assert search_cities(registry, "   ") == []
    assert search_cities(registry, "атлантида") == []


def test_normalise_query_folds_case_yo_and_spaces() -> None:
    assert normalise_query("  Олёкминск   Город ") == "олекминск город"
