"""Building counts at province, country and world scope.

Two interchangeable counters are provided.  :class:`WorldScan` walks the
snapshot on every call; :class:`BuildingCensus` tallies the snapshot once and
answers from its tables.  Both return identical numbers for the same
snapshot, so an evaluation batch can pick the census without changing any
verdict.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Iterator, Mapping, Optional, Protocol

from dominion.state import Company, Owner, resolve_owner_country

from .buildings import DependencyConstraint, Requirements, ValueRange

if TYPE_CHECKING:
    from dominion.state import Province, WorldState

SCOPES: tuple[str, ...] = ("province", "country", "global")


class BuildingCounter(Protocol):
    def province_count(self, province_id: str, building_id: str, *, include_in_progress: bool = False) -> int: ...

    def country_count(self, country_id: Optional[str], building_id: str, *, include_in_progress: bool = False) -> int: ...

    def global_count(self, building_id: str, *, include_in_progress: bool = False) -> int: ...


def _entries(province: "Province", include_in_progress: bool) -> Iterator[tuple[str, Owner]]:
    if include_in_progress:
        yield from province.iter_entries()
        return
    for built in province.buildings_built:
        yield built.building_id, built.owner


def count_in_province(province: "Province", building_id: str, *, include_in_progress: bool = False) -> int:
    return sum(1 for bid, _ in _entries(province, include_in_progress) if bid == building_id)


def count_for_country(
    provinces: Iterable["Province"],
    building_id: str,
    country_id: Optional[str],
    companies: Mapping[str, Company],
    *,
    include_in_progress: bool = False,
) -> int:
    """Count instances anywhere in the world whose owner resolves to ``country_id``.

    State-owned and company-owned instances are combined.  An unknown country
    counts nothing.
    """

    if country_id is None:
        return 0
    total = 0
    for province in provinces:
        for bid, owner in _entries(province, include_in_progress):
            if bid != building_id:
                continue
            resolved = resolve_owner_country(owner, companies, province_owner_id=province.owner_country_id)
            if resolved == country_id:
                total += 1
    return total


def count_global(provinces: Iterable["Province"], building_id: str, *, include_in_progress: bool = False) -> int:
    return sum(count_in_province(p, building_id, include_in_progress=include_in_progress) for p in provinces)


@dataclass(slots=True)
class WorldScan:
    """Counter that rescans the snapshot for every question."""

    world: "WorldState"

    def province_count(self, province_id: str, building_id: str, *, include_in_progress: bool = False) -> int:
        province = self.world.provinces.get(province_id)
        if province is None:
            return 0
        return count_in_province(province, building_id, include_in_progress=include_in_progress)

    def country_count(self, country_id: Optional[str], building_id: str, *, include_in_progress: bool = False) -> int:
        return count_for_country(
            self.world.provinces.values(),
            building_id,
            country_id,
            self.world.companies,
            include_in_progress=include_in_progress,
        )

    def global_count(self, building_id: str, *, include_in_progress: bool = False) -> int:
        return count_global(self.world.provinces.values(), building_id, include_in_progress=include_in_progress)


@dataclass(slots=True)
class BuildingCensus:
    """Per-batch tallies of built and built-plus-in-progress instances."""

    built_by_province: Counter = field(default_factory=Counter)
    built_by_country: Counter = field(default_factory=Counter)
    built_global: Counter = field(default_factory=Counter)
    occupied_by_province: Counter = field(default_factory=Counter)
    occupied_by_country: Counter = field(default_factory=Counter)
    occupied_global: Counter = field(default_factory=Counter)

    @classmethod
    def from_world(cls, world: "WorldState") -> "BuildingCensus":
        census = cls()
        for province in world.provinces.values():
            for built in province.buildings_built:
                census._tally(province, built.building_id, built.owner, world.companies, built=True)
            for building_id, entries in province.construction_progress.items():
                for entry in entries:
                    census._tally(province, building_id, entry.owner, world.companies, built=False)
        return census

    def _tally(
        self,
        province: "Province",
        building_id: str,
        owner: Owner,
        companies: Mapping[str, Company],
        *,
        built: bool,
    ) -> None:
        country_id = resolve_owner_country(owner, companies, province_owner_id=province.owner_country_id)
        self.occupied_by_province[(province.province_id, building_id)] += 1
        self.occupied_global[building_id] += 1
        if country_id is not None:
            self.occupied_by_country[(country_id, building_id)] += 1
        if not built:
            return
        self.built_by_province[(province.province_id, building_id)] += 1
        self.built_global[building_id] += 1
        if country_id is not None:
            self.built_by_country[(country_id, building_id)] += 1

    def province_count(self, province_id: str, building_id: str, *, include_in_progress: bool = False) -> int:
        table = self.occupied_by_province if include_in_progress else self.built_by_province
        return table[(province_id, building_id)]

    def country_count(self, country_id: Optional[str], building_id: str, *, include_in_progress: bool = False) -> int:
        if country_id is None:
            return 0
        table = self.occupied_by_country if include_in_progress else self.built_by_country
        return table[(country_id, building_id)]

    def global_count(self, building_id: str, *, include_in_progress: bool = False) -> int:
        table = self.occupied_global if include_in_progress else self.built_global
        return table[building_id]


@dataclass(frozen=True, slots=True)
class DependencyShortfall:
    building_id: str
    scope: str
    count: int
    bounds: ValueRange


@dataclass(frozen=True, slots=True)
class CapBreach:
    scope: str
    count: int
    limit: int


def _scoped_count(
    counter: BuildingCounter,
    scope: str,
    *,
    province_id: str,
    country_id: Optional[str],
    building_id: str,
    include_in_progress: bool = False,
) -> int:
    if scope == "province":
        return counter.province_count(province_id, building_id, include_in_progress=include_in_progress)
    if scope == "country":
        return counter.country_count(country_id, building_id, include_in_progress=include_in_progress)
    return counter.global_count(building_id, include_in_progress=include_in_progress)


def _constraint_bounds(constraint: DependencyConstraint) -> Iterator[tuple[str, ValueRange]]:
    for scope, bounds in zip(SCOPES, (constraint.province, constraint.country, constraint.global_)):
        if bounds is not None:
            yield scope, bounds


def dependency_failures(
    requirements: Requirements,
    province: "Province",
    country_id: Optional[str],
    counter: BuildingCounter,
    *,
    candidate_building_id: Optional[str] = None,
    candidate_built: bool = False,
) -> list[DependencyShortfall]:
    """Check the ``buildings`` map (or the legacy ``dependencies`` list).

    Only built instances count.  When an already built instance is being
    re-evaluated (``candidate_built``) it is left out of its own counts.
    """

    failures: list[DependencyShortfall] = []
    if requirements.buildings is not None:
        for dep_id, constraint in requirements.buildings.items():
            offset = 1 if candidate_built and dep_id == candidate_building_id else 0
            for scope, bounds in _constraint_bounds(constraint):
                count = _scoped_count(
                    counter,
                    scope,
                    province_id=province.province_id,
                    country_id=country_id,
                    building_id=dep_id,
                )
                if scope != "country" or country_id is not None:
                    count -= offset
                if not bounds.contains(count):
                    failures.append(DependencyShortfall(dep_id, scope, max(0, count), bounds))
    elif requirements.dependencies:
        for dep_id in requirements.dependencies:
            offset = 1 if candidate_built and dep_id == candidate_building_id else 0
            count = counter.province_count(province.province_id, dep_id) - offset
            if count < 1:
                failures.append(DependencyShortfall(dep_id, "province", max(0, count), ValueRange(min=1)))
    return failures


def cap_failures(
    requirements: Requirements,
    province: "Province",
    building_id: str,
    country_id: Optional[str],
    counter: BuildingCounter,
    *,
    exclude_self: bool = False,
) -> list[CapBreach]:
    """Legacy ``max_per_*`` caps over built plus in-progress instances."""

    breaches: list[CapBreach] = []
    limits = (requirements.max_per_province, requirements.max_per_country, requirements.max_global)
    for scope, limit in zip(SCOPES, limits):
        if not limit or limit <= 0:
            continue
        if scope == "country" and country_id is None:
            continue
        count = _scoped_count(
            counter,
            scope,
            province_id=province.province_id,
            country_id=country_id,
            building_id=building_id,
            include_in_progress=True,
        )
        if exclude_self:
            count -= 1
        if count >= limit:
            breaches.append(CapBreach(scope, count, int(limit)))
    return breaches


__all__ = [
    "BuildingCensus",
    "BuildingCounter",
    "CapBreach",
    "DependencyShortfall",
    "SCOPES",
    "WorldScan",
    "cap_failures",
    "count_for_country",
    "count_global",
    "count_in_province",
    "dependency_failures",
]
