"""Read-only world snapshot consumed by the eligibility engine.

Provinces, catalogs and agreements arrive already materialized from the save
and turn layers.  Nothing in this package writes back into these records; the
engine only walks them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Iterator, Mapping, Optional, Union

from .runtime.telemetry import DebugConfig

if TYPE_CHECKING:
    from .runtime.diplomacy import DiplomacyAgreement
    from .runtime.eligibility import EligibilityConfig
    from .world.buildings import BuildingDefinition, Industry


@dataclass(frozen=True, slots=True)
class StateOwner:
    country_id: str


@dataclass(frozen=True, slots=True)
class CompanyOwner:
    company_id: str


Owner = Union[StateOwner, CompanyOwner]


@dataclass(frozen=True, slots=True)
class Country:
    country_id: str
    name: str = ""


@dataclass(frozen=True, slots=True)
class Company:
    company_id: str
    country_id: str
    name: str = ""


@dataclass(slots=True)
class BuiltBuilding:
    building_id: str
    owner: Owner


@dataclass(slots=True)
class ConstructionEntry:
    owner: Owner
    progress: float = 0.0


@dataclass(slots=True)
class Province:
    province_id: str
    owner_country_id: Optional[str] = None
    climate_id: Optional[str] = None
    landscape_id: Optional[str] = None
    culture_id: Optional[str] = None
    religion_id: Optional[str] = None
    continent_id: Optional[str] = None
    region_id: Optional[str] = None
    resource_amounts: dict[str, float] = field(default_factory=dict)
    radiation: Optional[float] = None
    pollution: Optional[float] = None
    buildings_built: list[BuiltBuilding] = field(default_factory=list)
    construction_progress: dict[str, list[ConstructionEntry]] = field(default_factory=dict)

    def trait(self, category: str) -> Optional[str]:
        """Return the trait id for ``category`` or ``None`` when unset or unknown."""

        return getattr(self, f"{category}_id", None) if category in TRAIT_CATEGORIES else None

    def resource_amount(self, resource_id: str) -> float:
        return float(self.resource_amounts.get(resource_id, 0.0) or 0.0)

    def iter_entries(self) -> Iterator[tuple[str, Owner]]:
        """Yield ``(building_id, owner)`` for built and in-progress instances."""

        for built in self.buildings_built:
            yield built.building_id, built.owner
        for building_id, entries in self.construction_progress.items():
            for entry in entries:
                yield building_id, entry.owner


TRAIT_CATEGORIES: tuple[str, ...] = (
    "climate",
    "landscape",
    "culture",
    "religion",
    "continent",
    "region",
)


def resolve_owner_country(
    owner: Owner,
    companies: Mapping[str, Company],
    *,
    province_owner_id: Optional[str] = None,
) -> Optional[str]:
    """Resolve the country an owner belongs to.

    State owners answer directly; legacy state entries saved with an empty
    country id fall back to the province owner.  Company owners resolve via the
    company catalog and return ``None`` when the company is unknown, which
    fails every downstream country comparison.
    """

    match owner:
        case StateOwner(country_id=country_id):
            return country_id or province_owner_id
        case CompanyOwner(company_id=company_id):
            company = companies.get(company_id)
            return company.country_id if company is not None else None
        case _:
            raise TypeError(f"Unsupported building owner: {owner!r}")


def owner_kind(owner: Owner) -> str:
    match owner:
        case StateOwner():
            return "state"
        case CompanyOwner():
            return "company"
        case _:
            raise TypeError(f"Unsupported building owner: {owner!r}")


@dataclass(slots=True)
class WorldState:
    """Snapshot of everything the eligibility rules read."""

    turn: int = 0
    provinces: dict[str, Province] = field(default_factory=dict)
    buildings: dict[str, "BuildingDefinition"] = field(default_factory=dict)
    industries: dict[str, "Industry"] = field(default_factory=dict)
    companies: dict[str, Company] = field(default_factory=dict)
    countries: dict[str, Country] = field(default_factory=dict)
    agreements: list["DiplomacyAgreement"] = field(default_factory=list)
    eligibility_cfg: Optional["EligibilityConfig"] = None
    debug_cfg: DebugConfig = field(default_factory=DebugConfig)

    def add_province(self, province: Province) -> Province:
        self.provinces[province.province_id] = province
        return province

    def add_buildings(self, buildings: Iterable["BuildingDefinition"]) -> None:
        for building in buildings:
            self.buildings[building.building_id] = building

    def add_company(self, company: Company) -> Company:
        self.companies[company.company_id] = company
        return company

    def provinces_owned_by(self, country_id: Optional[str]) -> list[Province]:
        if country_id is None:
            return []
        return [p for p in self.provinces.values() if p.owner_country_id == country_id]


__all__ = [
    "BuiltBuilding",
    "Company",
    "CompanyOwner",
    "ConstructionEntry",
    "Country",
    "Owner",
    "Province",
    "StateOwner",
    "TRAIT_CATEGORIES",
    "WorldState",
    "owner_kind",
    "resolve_owner_country",
]
