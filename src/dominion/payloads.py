"""Build snapshot records from game-state mappings.

Game saves store camelCase JSON (``ownerCountryId``, ``allowedCountriesMode``,
``counterTerms`` ...).  These adapters turn already decoded mappings into the
dataclasses the rules engine reads.  Absent optional fields stay ``None`` so
the engine treats them as unconstrained; structurally broken input raises
:class:`PayloadError`.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from .runtime.diplomacy import AgreementTerms, DiplomacyAgreement, UsageLimits
from .state import (
    TRAIT_CATEGORIES,
    BuiltBuilding,
    Company,
    CompanyOwner,
    ConstructionEntry,
    Country,
    Owner,
    Province,
    StateOwner,
    WorldState,
)
from .world.buildings import (
    BuildingDefinition,
    DependencyConstraint,
    Industry,
    Requirements,
    ResourceCriteria,
    TraitCriteria,
    ValueRange,
)
from .world.requirements import LOGIC_OPS, LogicGroup, RequirementNode, TraitLeaf

logger = logging.getLogger(__name__)

_SCOPE_KEYS = ("province", "country", "global")


class PayloadError(ValueError):
    """Raised when a game-state mapping cannot be turned into a record."""


def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise PayloadError(f"{what} must be a mapping, got {type(value).__name__}")
    return value


def _require(payload: Mapping[str, Any], key: str, what: str) -> Any:
    value = payload.get(key)
    if value is None or value == "":
        raise PayloadError(f"{what} is missing {key!r}")
    return value


def _opt_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _opt_float(value: Any, what: str) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise PayloadError(f"{what} must be a number, got {value!r}") from exc


def _opt_int(value: Any, what: str) -> Optional[int]:
    number = _opt_float(value, what)
    return None if number is None else int(number)


def _opt_ids(value: Any, what: str) -> Optional[tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise PayloadError(f"{what} must be a list of ids")
    return tuple(str(item) for item in value)


def _records(value: Any, what: str) -> list[Mapping[str, Any]]:
    """Accept either a list of records or an ``{id: record}`` mapping."""

    if value is None:
        return []
    if isinstance(value, Mapping):
        records = []
        for key, record in value.items():
            record = _mapping(record, f"{what} {key!r}")
            records.append(record if record.get("id") else {**record, "id": key})
        return records
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise PayloadError(f"{what} must be a list or mapping of records")
    return [_mapping(record, what) for record in value]


def owner_from_payload(payload: Any) -> Owner:
    data = _mapping(payload, "owner")
    kind = data.get("type")
    if kind == "state":
        # Older saves left the country empty; resolution falls back to the province owner.
        return StateOwner(country_id=str(data.get("countryId") or ""))
    if kind == "company":
        return CompanyOwner(company_id=str(_require(data, "companyId", "company owner")))
    raise PayloadError(f"unknown owner type {kind!r}")


def value_range_from_payload(payload: Any, what: str = "range") -> Optional[ValueRange]:
    if payload is None:
        return None
    data = _mapping(payload, what)
    return ValueRange(
        min=_opt_float(data.get("min"), f"{what}.min"),
        max=_opt_float(data.get("max"), f"{what}.max"),
    )


def trait_criteria_from_payload(payload: Any, what: str = "trait criteria") -> Optional[TraitCriteria]:
    if payload is None:
        return None
    data = _mapping(payload, what)
    return TraitCriteria(
        any_of=_opt_ids(data.get("anyOf"), f"{what}.anyOf"),
        none_of=_opt_ids(data.get("noneOf"), f"{what}.noneOf"),
    )


def resource_criteria_from_payload(payload: Any) -> Optional[ResourceCriteria]:
    if payload is None:
        return None
    data = _mapping(payload, "resource requirements")
    legacy: dict[str, float] = {}
    if "anyOf" not in data and "noneOf" not in data:
        for resource_id, amount in data.items():
            if isinstance(amount, (int, float)) and not isinstance(amount, bool):
                legacy[str(resource_id)] = float(amount)
            else:
                logger.warning("ignoring legacy resource requirement %s=%r", resource_id, amount)
    return ResourceCriteria(
        any_of=_opt_ids(data.get("anyOf"), "resources.anyOf"),
        none_of=_opt_ids(data.get("noneOf"), "resources.noneOf"),
        legacy_amounts=legacy,
    )


def dependency_constraint_from_payload(building_id: str, payload: Any) -> DependencyConstraint:
    what = f"building dependency {building_id!r}"
    data = _mapping(payload, what)
    if not any(key in data for key in _SCOPE_KEYS) and ("min" in data or "max" in data):
        return DependencyConstraint(province=value_range_from_payload(data, what))
    return DependencyConstraint(
        province=value_range_from_payload(data.get("province"), f"{what}.province"),
        country=value_range_from_payload(data.get("country"), f"{what}.country"),
        global_=value_range_from_payload(data.get("global"), f"{what}.global"),
    )


def requirement_node_from_payload(payload: Any) -> RequirementNode:
    """Parse a logic tree without recursing, so depth is bounded only by memory."""

    pending: list[tuple[Any, bool]] = [(payload, False)]
    built: list[RequirementNode] = []
    while pending:
        raw, expanded = pending.pop()
        data = _mapping(raw, "requirement node")
        kind = data.get("type")
        if kind == "trait" or (kind is None and "category" in data):
            category = data.get("category")
            if category not in TRAIT_CATEGORIES:
                raise PayloadError(f"unknown trait category {category!r}")
            built.append(TraitLeaf(category=category, id=str(_require(data, "id", "trait node"))))
            continue
        if kind not in ("group", None):
            raise PayloadError(f"unknown requirement node type {kind!r}")
        op = data.get("op")
        if op not in LOGIC_OPS:
            raise PayloadError(f"unknown logic operator {op!r}")
        children = data.get("children") or []
        if isinstance(children, (str, bytes, Mapping)) or not isinstance(children, Iterable):
            raise PayloadError("logic group children must be a list")
        children = list(children)
        if not expanded:
            pending.append((data, True))
            pending.extend((child, False) for child in reversed(children))
            continue
        count = len(children)
        parsed = tuple(built[len(built) - count :]) if count else ()
        if count:
            del built[len(built) - count :]
        built.append(LogicGroup(op=op, children=parsed))
    return built[-1]


def _access_mode(value: Any, what: str) -> str:
    if value is None:
        return "allow"
    if value in ("allow", "deny"):
        return value
    logger.warning("ignoring unknown %s %r; using 'allow'", what, value)
    return "allow"


def requirements_from_payload(payload: Any) -> Optional[Requirements]:
    if payload is None:
        return None
    data = _mapping(payload, "requirements")
    buildings_raw = data.get("buildings")
    buildings = None
    if buildings_raw is not None:
        buildings = {
            str(bid): dependency_constraint_from_payload(str(bid), constraint)
            for bid, constraint in _mapping(buildings_raw, "requirements.buildings").items()
        }
    logic_raw = data.get("logic")
    traits = {
        category: trait_criteria_from_payload(data.get(category), f"requirements.{category}")
        for category in TRAIT_CATEGORIES
    }
    legacy_ids = {f"{category}_id": _opt_str(data.get(f"{category}Id")) for category in TRAIT_CATEGORIES}
    return Requirements(
        logic=requirement_node_from_payload(logic_raw) if logic_raw is not None else None,
        **traits,
        **legacy_ids,
        resources=resource_criteria_from_payload(data.get("resources")),
        radiation=value_range_from_payload(data.get("radiation"), "requirements.radiation"),
        pollution=value_range_from_payload(data.get("pollution"), "requirements.pollution"),
        buildings=buildings,
        dependencies=_opt_ids(data.get("dependencies"), "requirements.dependencies"),
        allowed_countries=_opt_ids(data.get("allowedCountries"), "requirements.allowedCountries"),
        allowed_countries_mode=_access_mode(data.get("allowedCountriesMode"), "allowedCountriesMode"),
        allowed_companies=_opt_ids(data.get("allowedCompanies"), "requirements.allowedCompanies"),
        allowed_companies_mode=_access_mode(data.get("allowedCompaniesMode"), "allowedCompaniesMode"),
        max_per_province=_opt_int(data.get("maxPerProvince"), "requirements.maxPerProvince"),
        max_per_country=_opt_int(data.get("maxPerCountry"), "requirements.maxPerCountry"),
        max_global=_opt_int(data.get("maxGlobal"), "requirements.maxGlobal"),
    )


def _rates(value: Any, what: str) -> dict[str, float]:
    if value is None:
        return {}
    return {str(k): float(_opt_float(v, f"{what}.{k}") or 0.0) for k, v in _mapping(value, what).items()}


def building_from_payload(payload: Any) -> BuildingDefinition:
    data = _mapping(payload, "building")
    building_id = str(_require(data, "id", "building"))
    cost = _opt_float(data.get("cost"), f"building {building_id}.cost")
    return BuildingDefinition(
        building_id=building_id,
        name=str(data.get("name") or building_id),
        cost=100.0 if cost is None else cost,
        industry_id=_opt_str(data.get("industryId")),
        requirements=requirements_from_payload(data.get("requirements")),
        production=_rates(data.get("production"), "production"),
        consumption=_rates(data.get("consumption"), "consumption"),
        extraction=_rates(data.get("extraction"), "extraction"),
    )


def province_from_payload(payload: Any, province_id: Optional[str] = None) -> Province:
    data = _mapping(payload, "province")
    pid = str(data.get("id") or province_id or "")
    if not pid:
        raise PayloadError("province is missing 'id'")
    built = [
        BuiltBuilding(
            building_id=str(_require(_mapping(entry, "built building"), "buildingId", "built building")),
            owner=owner_from_payload(entry.get("owner")),
        )
        for entry in data.get("buildingsBuilt") or []
    ]
    progress: dict[str, list[ConstructionEntry]] = {}
    for building_id, entries in _mapping(data.get("constructionProgress") or {}, "constructionProgress").items():
        progress[str(building_id)] = [
            ConstructionEntry(
                owner=owner_from_payload(_mapping(entry, "construction entry").get("owner")),
                progress=_opt_float(entry.get("progress"), "construction progress") or 0.0,
            )
            for entry in entries or []
        ]
    amounts = {
        str(rid): _opt_float(amount, f"resourceAmounts.{rid}") or 0.0
        for rid, amount in _mapping(data.get("resourceAmounts") or {}, "resourceAmounts").items()
    }
    return Province(
        province_id=pid,
        owner_country_id=_opt_str(data.get("ownerCountryId")),
        climate_id=_opt_str(data.get("climateId")),
        landscape_id=_opt_str(data.get("landscapeId")),
        culture_id=_opt_str(data.get("cultureId")),
        religion_id=_opt_str(data.get("religionId")),
        continent_id=_opt_str(data.get("continentId")),
        region_id=_opt_str(data.get("regionId")),
        resource_amounts=amounts,
        radiation=_opt_float(data.get("radiation"), "radiation"),
        pollution=_opt_float(data.get("pollution"), "pollution"),
        buildings_built=built,
        construction_progress=progress,
    )


def _terms_from_payload(payload: Any, what: str) -> AgreementTerms:
    data = _mapping(payload, what)
    limits = _mapping(data.get("limits") or {}, f"{what}.limits")
    allow_state = data.get("allowState")
    allow_companies = data.get("allowCompanies")
    return AgreementTerms(
        agreement_category=_opt_str(data.get("agreementCategory")),
        kind=_opt_str(data.get("kind")),
        allow_state=None if allow_state is None else bool(allow_state),
        allow_companies=None if allow_companies is None else bool(allow_companies),
        company_ids=_opt_ids(data.get("companyIds"), f"{what}.companyIds") or (),
        building_ids=_opt_ids(data.get("buildingIds"), f"{what}.buildingIds") or (),
        province_ids=_opt_ids(data.get("provinceIds"), f"{what}.provinceIds") or (),
        industries=_opt_ids(data.get("industries"), f"{what}.industries") or (),
        limits=UsageLimits(
            per_province=_opt_int(limits.get("perProvince"), "limits.perProvince"),
            per_country=_opt_int(limits.get("perCountry"), "limits.perCountry"),
            global_=_opt_int(limits.get("global"), "limits.global"),
        ),
    )


def agreement_from_payload(payload: Any) -> DiplomacyAgreement:
    data = _mapping(payload, "agreement")
    agreement_id = str(_require(data, "id", "agreement"))
    counter = data.get("counterTerms")
    return DiplomacyAgreement(
        agreement_id=agreement_id,
        host_country_id=str(_require(data, "hostCountryId", f"agreement {agreement_id}")),
        guest_country_id=str(_require(data, "guestCountryId", f"agreement {agreement_id}")),
        terms=_terms_from_payload(data, f"agreement {agreement_id}"),
        counter_terms=_terms_from_payload(counter, f"agreement {agreement_id}.counterTerms") if counter else None,
        title=str(data.get("title") or ""),
        start_turn=_opt_int(data.get("startTurn"), "startTurn"),
        duration_turns=_opt_int(data.get("durationTurns"), "durationTurns"),
    )


def world_from_payload(payload: Any) -> WorldState:
    """Build a :class:`WorldState` from a decoded game-state mapping."""

    data = _mapping(payload, "game state")
    world = WorldState(turn=_opt_int(data.get("turn"), "turn") or 0)
    for record in _records(data.get("provinces"), "province"):
        world.add_province(province_from_payload(record))
    world.add_buildings(building_from_payload(record) for record in _records(data.get("buildings"), "building"))
    for record in _records(data.get("industries"), "industry"):
        industry_id = str(_require(record, "id", "industry"))
        world.industries[industry_id] = Industry(industry_id=industry_id, name=str(record.get("name") or ""))
    for record in _records(data.get("companies"), "company"):
        company_id = str(_require(record, "id", "company"))
        world.add_company(
            Company(
                company_id=company_id,
                country_id=str(_require(record, "countryId", f"company {company_id}")),
                name=str(record.get("name") or ""),
            )
        )
    for record in _records(data.get("countries"), "country"):
        country_id = str(_require(record, "id", "country"))
        world.countries[country_id] = Country(country_id=country_id, name=str(record.get("name") or ""))
    raw_agreements = data.get("diplomacy", data.get("agreements"))
    world.agreements = [agreement_from_payload(record) for record in _records(raw_agreements, "agreement")]
    logger.debug(
        "loaded world turn=%d provinces=%d buildings=%d agreements=%d",
        world.turn,
        len(world.provinces),
        len(world.buildings),
        len(world.agreements),
    )
    return world


__all__ = [
    "PayloadError",
    "agreement_from_payload",
    "building_from_payload",
    "dependency_constraint_from_payload",
    "owner_from_payload",
    "province_from_payload",
    "requirement_node_from_payload",
    "requirements_from_payload",
    "resource_criteria_from_payload",
    "trait_criteria_from_payload",
    "value_range_from_payload",
    "world_from_payload",
]
