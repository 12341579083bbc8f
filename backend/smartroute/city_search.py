from __future__ import annotations

from .models import City, CitySearchHit
from .registry import NetworkRegistry

MATCH_SCORES: dict[str, float] = {
    "exact": 1.0,
    "synonym": 0.95,
    "prefix": 0.8,
    "district": 0.7,
    "region": 0.5,
    "substring": 0.4,
}


def normalise_query(text: str) -> str:
    return " ".join(text.lower().replace("ё", "е").split())


def _match_kind(city: City, query: str) -> str | None:
    name = normalise_query(city.normalized_name or city.name)
    display = normalise_query(city.name)
    admin = city.administrative
    formats = [normalise_query(v) for v in admin.formats().values()]
    synonyms = [normalise_query(s) for s in city.synonyms]

    if query in (name, display, city.id) or query in formats:
        return "exact"
    if query in synonyms:
        return "synonym"
    if name.startswith(query) or display.startswith(query) or any(s.startswith(query) for s in synonyms):
        return "prefix"
    if admin.district and query in normalise_query(admin.district):
        return "district"
    if query in normalise_query(admin.subject) or query in normalise_query(admin.subject_short):
        return "region"
    if query in name or any(query in f for f in formats) or any(query in s for s in synonyms):
        return "substring"
    return None


def search_cities(registry: NetworkRegistry, query: str, limit: int = 10) -> list[CitySearchHit]:
    """Rank cities against a free-text query; empty queries match nothing."""
    q = normalise_query(query or "")
    if not q:
        return []
    scored: list[tuple[float, int, str, City, str]] = []
    for city in registry.cities:
        kind = _match_kind(city, q)
        if kind is None:
            continue
        scored.append((MATCH_SCORES[kind], city.population or 0, city.name, city, kind))
    scored.sort(key=lambda item: (-item[0], -item[1], item[2]))
    return [
        CitySearchHit(
            city_id=city.id,
            name=city.name,
            match=kind,  # type: ignore[arg-type]
            score=score,
            formats=city.administrative.formats(),
        )
        for score, _, _, city, kind in scored[: max(0, int(limit))]
    ]
