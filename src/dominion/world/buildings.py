"""Building catalog records and their placement requirements."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping, Optional

from .requirements import RequirementNode

AccessMode = Literal["allow", "deny"]


@dataclass(frozen=True, slots=True)
class Industry:
    industry_id: str
    name: str = ""


@dataclass(frozen=True, slots=True)
class TraitCriteria:
    any_of: Optional[tuple[str, ...]] = None
    none_of: Optional[tuple[str, ...]] = None


@dataclass(frozen=True, slots=True)
class ResourceCriteria:
    any_of: Optional[tuple[str, ...]] = None
    none_of: Optional[tuple[str, ...]] = None
    # Older catalogs stored required resources as ``{resource_id: amount}``.
    legacy_amounts: Mapping[str, float] = field(default_factory=dict)

    def required_ids(self) -> tuple[str, ...]:
        if self.any_of is not None:
            return self.any_of
        return tuple(rid for rid, amount in self.legacy_amounts.items() if amount > 0)

    def forbidden_ids(self) -> tuple[str, ...]:
        return self.none_of or ()


@dataclass(frozen=True, slots=True)
class ValueRange:
    min: Optional[float] = None
    max: Optional[float] = None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


@dataclass(frozen=True, slots=True)
class DependencyConstraint:
    province: Optional[ValueRange] = None
    country: Optional[ValueRange] = None
    global_: Optional[ValueRange] = None


@dataclass(frozen=True, slots=True)
class Requirements:
    logic: Optional[RequirementNode] = None
    climate: Optional[TraitCriteria] = None
    landscape: Optional[TraitCriteria] = None
    culture: Optional[TraitCriteria] = None
    religion: Optional[TraitCriteria] = None
    continent: Optional[TraitCriteria] = None
    region: Optional[TraitCriteria] = None
    climate_id: Optional[str] = None
    landscape_id: Optional[str] = None
    culture_id: Optional[str] = None
    religion_id: Optional[str] = None
    continent_id: Optional[str] = None
    region_id: Optional[str] = None
    resources: Optional[ResourceCriteria] = None
    radiation: Optional[ValueRange] = None
    pollution: Optional[ValueRange] = None
    buildings: Optional[Mapping[str, DependencyConstraint]] = None
    dependencies: Optional[tuple[str, ...]] = None
    allowed_countries: Optional[tuple[str, ...]] = None
    allowed_countries_mode: AccessMode = "allow"
    allowed_companies: Optional[tuple[str, ...]] = None
    allowed_companies_mode: AccessMode = "allow"
    max_per_province: Optional[int] = None
    max_per_country: Optional[int] = None
    max_global: Optional[int] = None

    def trait_criteria(self, category: str) -> tuple[Optional[TraitCriteria], Optional[str]]:
        """Return ``(criteria, legacy_id)`` for a trait category."""

        return getattr(self, category, None), getattr(self, f"{category}_id", None)


@dataclass(frozen=True, slots=True)
class BuildingDefinition:
    building_id: str
    name: str = ""
    cost: float = 100.0
    industry_id: Optional[str] = None
    requirements: Optional[Requirements] = None
    production: Mapping[str, float] = field(default_factory=dict)
    consumption: Mapping[str, float] = field(default_factory=dict)
    extraction: Mapping[str, float] = field(default_factory=dict)


__all__ = [
    "AccessMode",
    "BuildingDefinition",
    "DependencyConstraint",
    "Industry",
    "Requirements",
    "ResourceCriteria",
    "TraitCriteria",
    "ValueRange",
]
