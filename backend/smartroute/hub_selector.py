from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import date

from .geo import distance_between
from .models import City, Hub
from .registry import NetworkRegistry

LONG_HAUL_KM = 2_000.0
MAX_BFS_HOPS = 4
MAX_DFS_DEPTH = 5


@dataclass(frozen=True)
class HubSelection:
    requires_hubs: bool
    can_be_direct: bool
    from_hub: Hub | None = None
    to_hub: Hub | None = None
    reason: str | None = None


def is_small_airport(city: City) -> bool:
    return city.is_small_airport


def is_hub(city: City) -> bool:
    return city.is_tiered_hub


class HubSelector:
    """Air routing policy: when a trip may fly direct and which hubs it uses otherwise."""

    def __init__(self, registry: NetworkRegistry) -> None:
        self._registry = registry
        adjacency: dict[str, set[str]] = {hub.id: set() for hub in registry.hubs}
        for hub in registry.hubs:
            for other in hub.all_connections():
                # Local entries name airports, not hubs.
                if other in adjacency and other != hub.id:
                    adjacency[hub.id].add(other)
                    adjacency[other].add(hub.id)
        self._adjacency = adjacency

    def neighbours(self, hub_id: str) -> list[str]:
        hub = self._registry.hub(hub_id)
        if hub is None:
            return []
        listed = [h for h in hub.all_connections() if h in self._adjacency]
        # Declared order first, then edges only the other side lists.
        rest = sorted(self._adjacency.get(hub_id, set()) - set(listed))
        return [*dict.fromkeys(listed), *rest]

    def connected(self, a: str, b: str) -> bool:
        return b in self._adjacency.get(a, set())

    def select_hubs(self, origin: City, dest: City) -> HubSelection:
        registry = self._registry
        origin_small = origin.is_small_airport
        dest_small = dest.is_small_airport
        origin_hub = origin.is_tiered_hub
        dest_hub = dest.is_tiered_hub

        if origin_hub and dest_hub:
            if registry.has_connection(origin.id, dest.id, "airplane"):
                return HubSelection(requires_hubs=False, can_be_direct=True)
            return HubSelection(
                requires_hubs=True,
                can_be_direct=False,
                from_hub=registry.hub_for_city(origin.id),
                to_hub=registry.hub_for_city(dest.id),
                reason=f"No direct flight between hubs {origin.name} and {dest.name}; routing through the hub network",
            )

        if origin_small or dest_small:
            from_hub = (
                registry.nearest_regional_hub(origin.id)
                if origin_small
                else registry.hub_for_city(origin.id) if origin_hub else None
            )
            to_hub = (
                registry.nearest_regional_hub(dest.id)
                if dest_small
                else registry.hub_for_city(dest.id) if dest_hub else None
            )
            if origin_small and dest_small:
                reason = "Both cities are small airports; routing through regional hubs"
            elif origin_small:
                reason = f"Departure city {origin.name} is a small airport; routing through a regional hub"
            else:
                reason = f"Arrival city {dest.name} is a small airport; routing through a regional hub"
            return HubSelection(
                requires_hubs=True,
                can_be_direct=False,
                from_hub=from_hub,
                to_hub=to_hub,
                reason=reason,
            )

        distance = distance_between(origin.coordinates, dest.coordinates)
        if distance > LONG_HAUL_KM:
            return HubSelection(
                requires_hubs=True,
                can_be_direct=False,
                from_hub=registry.nearest_regional_hub(origin.id),
                to_hub=registry.nearest_regional_hub(dest.id),
                reason=f"Distance {distance:.0f} km is too long for a direct flight; routing through hubs",
            )
        return HubSelection(requires_hubs=False, can_be_direct=True)

    def can_build_direct_route(self, origin: City, dest: City) -> bool:
        selection = self.select_hubs(origin, dest)
        return selection.can_be_direct and not selection.requires_hubs

    def _open_on(self, hub_id: str, travel_date: date | None) -> bool:
        if travel_date is None:
            return True
        hub = self._registry.hub(hub_id)
        return hub is not None and hub.is_available_on(travel_date)

    def find_path_between_hubs(
        self,
        from_hub: Hub,
        to_hub: Hub,
        *,
        travel_date: date | None = None,
        max_hops: int = MAX_BFS_HOPS,
    ) -> list[Hub] | None:
        """Breadth-first hub path of at most ``max_hops`` edges.

        With ``travel_date`` set, intermediate hubs that do not operate that
        day are skipped; the endpoints are always allowed.
        """
        if from_hub.id == to_hub.id:
            return [from_hub]

        queue: deque[list[str]] = deque([[from_hub.id]])
        visited = {from_hub.id}
        while queue:
            path = queue.popleft()
            if len(path) - 1 >= max_hops:
                continue
            for nxt in self.neighbours(path[-1]):
                if nxt in visited:
                    continue
                if nxt == to_hub.id:
                    return self._hubs([*path, nxt])
                if not self._open_on(nxt, travel_date):
                    continue
                visited.add(nxt)
                queue.append([*path, nxt])
        return None

    def find_all_paths_between_hubs(
        self,
        from_hub: Hub,
        to_hub: Hub,
        *,
        max_paths: int = 3,
        max_depth: int = MAX_DFS_DEPTH,
    ) -> list[list[Hub]]:
        """Up to ``max_paths`` simple paths of at most ``max_depth`` hubs, depth first."""
        if from_hub.id == to_hub.id:
            return [[from_hub]]

        found: list[list[str]] = []
        # Each frame: (path so far, neighbours still to try).
        stack: list[tuple[list[str], list[str]]] = [([from_hub.id], list(reversed(self.neighbours(from_hub.id))))]
        while stack and len(found) < max_paths:
            path, pending = stack[-1]
            if not pending:
                stack.pop()
                continue
            nxt = pending.pop()
            if nxt in path:
                continue
            candidate = [*path, nxt]
            if nxt == to_hub.id:
                found.append(candidate)
                continue
            if len(candidate) >= max_depth:
                continue
            stack.append((candidate, list(reversed(self.neighbours(nxt)))))
        return [self._hubs(p) for p in found]

    def find_optimal_federal_hub(self, from_hub: Hub, to_hub: Hub) -> Hub | None:
        """Federal hub linked to both ends with the smallest total detour."""
        best: Hub | None = None
        best_km = float("inf")
        for hub in self._registry.hubs:
            if hub.level != "federal":
                continue
            if not (self.connected(from_hub.id, hub.id) and self.connected(hub.id, to_hub.id)):
                continue
            km = distance_between(from_hub.coordinates, hub.coordinates) + distance_between(
                hub.coordinates, to_hub.coordinates
            )
            if km < best_km:
                best_km = km
                best = hub
        return best

    def find_path_via_hubs(
        self,
        origin: City,
        dest: City,
        *,
        travel_date: date | None = None,
    ) -> list[Hub] | None:
        """Full hub sequence for a city pair, or None when a direct flight suffices or no path exists."""
        selection = self.select_hubs(origin, dest)
        if not selection.requires_hubs and self._registry.has_connection(origin.id, dest.id, "airplane"):
            return None
        from_hub = selection.from_hub
        to_hub = selection.to_hub
        if from_hub is None or to_hub is None:
            return None
        if from_hub.id == to_hub.id:
            return [from_hub]
        return self.find_path_between_hubs(from_hub, to_hub, travel_date=travel_date)

    def _hubs(self, ids: list[str]) -> list[Hub]:
        out: list[Hub] = []
        for hub_id in ids:
            hub = self._registry.hub(hub_id)
            if hub is not None:
                out.append(hub)
        return out
