from __future__ import annotations

import heapq
import itertools
from collections.abc import Iterable
from dataclasses import dataclass

from .models import Connection


@dataclass(frozen=True)
class RailPath:
    path: tuple[str, ...]
    total_distance_km: float
    total_duration_min: float
    connections: tuple[Connection, ...]

    @property
    def transfers(self) -> int:
        return max(0, len(self.connections) - 1)


class RailGraph:
    """Directed rail network keeping the shortest edge for every station pair."""

    def __init__(self, connections: Iterable[Connection]) -> None:
        graph: dict[str, dict[str, Connection]] = {}
        for connection in connections:
            if connection.type != "train":
                continue
            edges = graph.setdefault(connection.from_city_id, {})
            current = edges.get(connection.to_city_id)
            if current is None or connection.distance_km < current.distance_km:
                edges[connection.to_city_id] = connection
        self._graph = graph

    def connections_from(self, city_id: str) -> list[Connection]:
        return list(self._graph.get(city_id, {}).values())

    def connections_to(self, city_id: str) -> list[Connection]:
        return [edges[city_id] for edges in self._graph.values() if city_id in edges]

    def has_connection(self, from_city_id: str, to_city_id: str) -> bool:
        return to_city_id in self._graph.get(from_city_id, {})

    def get_connection(self, from_city_id: str, to_city_id: str) -> Connection | None:
        return self._graph.get(from_city_id, {}).get(to_city_id)

    def find_shortest_path(self, from_city_id: str, to_city_id: str, max_transfers: int = 5) -> RailPath | None:
        """Shortest path by distance using at most ``max_transfers`` changes of train.

        States are (station, legs taken) so a longer path with fewer legs
        is still found when the shortest one breaks the ceiling.
        """
        if from_city_id == to_city_id:
            return RailPath(path=(from_city_id,), total_distance_km=0.0, total_duration_min=0.0, connections=())

        max_legs = max(0, int(max_transfers)) + 1
        tie = itertools.count()
        heap: list[tuple[float, int, int, str, tuple[Connection, ...]]] = [(0.0, 0, next(tie), from_city_id, ())]
        settled: set[tuple[str, int]] = set()
        while heap:
            dist, legs, _, node, used = heapq.heappop(heap)
            if node == to_city_id:
                return self._result(from_city_id, used)
            if (node, legs) in settled:
                continue
            settled.add((node, legs))
            if legs >= max_legs:
                continue
            seen = {from_city_id, *(c.to_city_id for c in used)}
            for nxt, connection in self._graph.get(node, {}).items():
                if nxt in seen or (nxt, legs + 1) in settled:
                    continue
                heapq.heappush(heap, (dist + float(connection.distance_km), legs + 1, next(tie), nxt, (*used, connection)))
        return None

    @staticmethod
    def _result(start: str, used: tuple[Connection, ...]) -> RailPath:
        return RailPath(
            path=(start, *(c.to_city_id for c in used)),
            total_distance_km=sum(float(c.distance_km) for c in used),
            total_duration_min=sum(float(c.duration_min) for c in used),
            connections=used,
        )
