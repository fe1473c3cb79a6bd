"""Building eligibility: may this building exist here under this owner?

One evaluator serves both the construction screen ("can I start X here") and
the per-turn activity pass ("is this existing X still allowed to operate").
It runs every check, in a fixed order, and collects a :class:`BlockReason`
for each failure:

1. trait logic tree, or the flat per-category trait criteria
2. required / forbidden resources
3. radiation and pollution ranges
4. building dependencies, then the legacy per-scope building caps
5. country / company allow and deny lists
6. diplomatic access, only when the builder is foreign to the province

A verdict is active exactly when no reason was collected.  Evaluation never
raises for rule failures and never writes into the world snapshot; all
derived data (expanded agreements, building census, usage counts, metrics)
lives on an :class:`EvaluationBatch` that callers may reuse across many
candidates on the same snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Literal, Mapping, Optional, Sequence

from dominion.state import CompanyOwner, Owner, Province, StateOwner, WorldState, resolve_owner_country
from dominion.world.buildings import BuildingDefinition, Requirements, ValueRange
from dominion.world.dependencies import (
    BuildingCensus,
    BuildingCounter,
    WorldScan,
    cap_failures,
    dependency_failures,
)
from dominion.world.requirements import evaluate_requirement_node, iter_leaves
from dominion.world.traits import trait_failures

from .diplomacy import (
    CONSTRUCTION,
    DiplomacyAgreement,
    active_agreements,
    expand_agreements,
    index_agreements,
)
from .telemetry import REASON_PREFIX, DebugConfig, EventRing, Metrics, ensure_metrics, record_event
from .usage_limits import AgreementUsage

logger = logging.getLogger(__name__)

EntryStatus = Literal["built", "construction"]

TRAIT_MISMATCH = "TRAIT_MISMATCH"
LOGIC_UNSATISFIED = "LOGIC_UNSATISFIED"
RESOURCE_MISSING = "RESOURCE_MISSING"
RESOURCE_FORBIDDEN = "RESOURCE_FORBIDDEN"
RADIATION_OUT_OF_RANGE = "RADIATION_OUT_OF_RANGE"
POLLUTION_OUT_OF_RANGE = "POLLUTION_OUT_OF_RANGE"
DEPENDENCY_UNMET = "DEPENDENCY_UNMET"
BUILDING_CAP_REACHED = "BUILDING_CAP_REACHED"
COUNTRY_NOT_ALLOWED = "COUNTRY_NOT_ALLOWED"
COMPANY_NOT_ALLOWED = "COMPANY_NOT_ALLOWED"
OWNER_COUNTRY_UNKNOWN = "OWNER_COUNTRY_UNKNOWN"
NO_DIPLOMATIC_PERMISSION = "NO_DIPLOMATIC_PERMISSION"
OWNER_NOT_COVERED = "OWNER_NOT_COVERED"
AGREEMENT_TERMS_EXCLUDE = "AGREEMENT_TERMS_EXCLUDE"
AGREEMENT_LIMIT_REACHED = "AGREEMENT_LIMIT_REACHED"
UNKNOWN_PROVINCE = "UNKNOWN_PROVINCE"
UNKNOWN_BUILDING = "UNKNOWN_BUILDING"

_SCOPE_LABELS = {"province": "in province", "country": "in country", "global": "worldwide"}
_LIMIT_LABELS = {"province": "perProvince", "country": "perCountry", "global": "global"}


@dataclass(slots=True)
class EligibilityConfig:
    use_batch_census: bool = True
    construction_category: str = CONSTRUCTION
    record_blocked_events: bool = True
    topk_blocked: int = 10


def eligibility_config(world: Any) -> EligibilityConfig:
    cfg = getattr(world, "eligibility_cfg", None)
    return cfg if isinstance(cfg, EligibilityConfig) else EligibilityConfig()


@dataclass(slots=True)
class BlockReason:
    code: str
    msg: str
    details: dict[str, object] = field(default_factory=dict)


@dataclass(slots=True)
class EligibilityVerdict:
    building_id: str
    province_id: str
    reasons: list[BlockReason] = field(default_factory=list)

    @property
    def active(self) -> bool:
        return not self.reasons

    @property
    def messages(self) -> list[str]:
        return [reason.msg for reason in self.reasons]

    @property
    def codes(self) -> list[str]:
        return [reason.code for reason in self.reasons]


@dataclass(frozen=True, slots=True)
class EntryRef:
    province_id: str
    building_id: str
    status: EntryStatus
    index: int


@dataclass(slots=True)
class EvaluationBatch:
    world: WorldState
    turn: int
    cfg: EligibilityConfig
    agreements: list[DiplomacyAgreement]
    agreement_index: Mapping[tuple[str, str], Sequence[DiplomacyAgreement]]
    counter: BuildingCounter
    usage: AgreementUsage
    debug_cfg: DebugConfig = field(default_factory=DebugConfig)
    metrics: Metrics = field(default_factory=Metrics)
    event_ring: Optional[EventRing] = None


def prepare_batch(world: WorldState, *, turn: Optional[int] = None) -> EvaluationBatch:
    """Derive everything that stays fixed while the snapshot does."""

    cfg = eligibility_config(world)
    turn = world.turn if turn is None else turn
    agreements = active_agreements(expand_agreements(world.agreements), turn)
    counter: BuildingCounter = BuildingCensus.from_world(world) if cfg.use_batch_census else WorldScan(world)
    return EvaluationBatch(
        world=world,
        turn=turn,
        cfg=cfg,
        agreements=agreements,
        agreement_index=index_agreements(agreements, category=cfg.construction_category),
        counter=counter,
        usage=AgreementUsage(world, memoize=cfg.use_batch_census),
        debug_cfg=world.debug_cfg if isinstance(world.debug_cfg, DebugConfig) else DebugConfig(),
    )


def _fmt_range(bounds: ValueRange) -> str:
    low = "-inf" if bounds.min is None else f"{bounds.min:g}"
    high = "inf" if bounds.max is None else f"{bounds.max:g}"
    return f"[{low}, {high}]"


def _trait_reasons(requirements: Requirements, province: Province) -> list[BlockReason]:
    if requirements.logic is not None:
        if evaluate_requirement_node(requirements.logic, province):
            return []
        categories = sorted({leaf.category for leaf in iter_leaves(requirements.logic)})
        return [
            BlockReason(
                LOGIC_UNSATISFIED,
                "trait requirements not satisfied",
                {"categories": categories},
            )
        ]
    return [
        BlockReason(
            TRAIT_MISMATCH,
            f"{category} mismatch",
            {"category": category, "value": province.trait(category)},
        )
        for category in trait_failures(requirements, province)
    ]


def _resource_reasons(requirements: Requirements, province: Province) -> list[BlockReason]:
    criteria = requirements.resources
    if criteria is None:
        return []
    reasons: list[BlockReason] = []
    missing = [rid for rid in criteria.required_ids() if province.resource_amount(rid) <= 0]
    if missing:
        reasons.append(
            BlockReason(RESOURCE_MISSING, f"missing required resources: {', '.join(missing)}", {"resources": missing})
        )
    present = [rid for rid in criteria.forbidden_ids() if province.resource_amount(rid) > 0]
    if present:
        reasons.append(
            BlockReason(RESOURCE_FORBIDDEN, f"forbidden resources present: {', '.join(present)}", {"resources": present})
        )
    return reasons


def _environment_reasons(requirements: Requirements, province: Province) -> list[BlockReason]:
    reasons: list[BlockReason] = []
    for name, code, bounds, value in (
        ("radiation", RADIATION_OUT_OF_RANGE, requirements.radiation, province.radiation),
        ("pollution", POLLUTION_OUT_OF_RANGE, requirements.pollution, province.pollution),
    ):
        if bounds is None:
            continue
        level = float(value or 0.0)
        if not bounds.contains(level):
            reasons.append(
                BlockReason(
                    code,
                    f"{name} {level:g} outside allowed range {_fmt_range(bounds)}",
                    {"value": level, "min": bounds.min, "max": bounds.max},
                )
            )
    return reasons


def _building_count_reasons(
    batch: EvaluationBatch,
    building: BuildingDefinition,
    requirements: Requirements,
    province: Province,
    owner_country_id: Optional[str],
    existing: Optional[EntryStatus],
) -> list[BlockReason]:
    reasons: list[BlockReason] = []
    for shortfall in dependency_failures(
        requirements,
        province,
        owner_country_id,
        batch.counter,
        candidate_building_id=building.building_id,
        candidate_built=existing == "built",
    ):
        reasons.append(
            BlockReason(
                DEPENDENCY_UNMET,
                f"requires {shortfall.building_id} {_SCOPE_LABELS[shortfall.scope]} "
                f"in range {_fmt_range(shortfall.bounds)} (have {shortfall.count})",
                {
                    "building_id": shortfall.building_id,
                    "scope": shortfall.scope,
                    "count": shortfall.count,
                    "min": shortfall.bounds.min,
                    "max": shortfall.bounds.max,
                },
            )
        )
    for breach in cap_failures(
        requirements,
        province,
        building.building_id,
        owner_country_id,
        batch.counter,
        exclude_self=existing is not None,
    ):
        reasons.append(
            BlockReason(
                BUILDING_CAP_REACHED,
                f"building cap reached {_SCOPE_LABELS[breach.scope]} ({breach.count}/{breach.limit})",
                {"scope": breach.scope, "count": breach.count, "limit": breach.limit},
            )
        )
    return reasons


def _list_blocks(mode: str, entries: Sequence[str], member: Optional[str]) -> bool:
    if not entries:
        return mode == "allow"
    included = member is not None and member in entries
    return included if mode == "deny" else not included


def _access_reasons(
    requirements: Requirements,
    owner: Owner,
    owner_country_id: Optional[str],
) -> list[BlockReason]:
    match owner:
        case StateOwner():
            entries = requirements.allowed_countries
            if entries is None:
                return []
            if _list_blocks(requirements.allowed_countries_mode, entries, owner_country_id):
                return [
                    BlockReason(
                        COUNTRY_NOT_ALLOWED,
                        f"country {owner_country_id} may not own this building",
                        {"country_id": owner_country_id, "mode": requirements.allowed_countries_mode},
                    )
                ]
            return []
        case CompanyOwner(company_id=company_id):
            entries = requirements.allowed_companies
            if entries is None:
                return []
            if _list_blocks(requirements.allowed_companies_mode, entries, company_id):
                return [
                    BlockReason(
                        COMPANY_NOT_ALLOWED,
                        f"company {company_id} may not own this building",
                        {"company_id": company_id, "mode": requirements.allowed_companies_mode},
                    )
                ]
            return []
        case _:
            raise TypeError(f"Unsupported building owner: {owner!r}")


def _diplomacy_reason(
    batch: EvaluationBatch,
    building: BuildingDefinition,
    province: Province,
    owner: Owner,
    guest_country_id: str,
    existing: Optional[EntryStatus],
) -> Optional[BlockReason]:
    host_country_id = province.owner_country_id
    details: dict[str, object] = {"host_country_id": host_country_id, "guest_country_id": guest_country_id}
    candidates = batch.agreement_index.get((host_country_id, guest_country_id), ()) if host_country_id else ()
    if not candidates:
        return BlockReason(
            NO_DIPLOMATIC_PERMISSION,
            f"no diplomatic permission from {host_country_id or 'an unowned province'} for {guest_country_id}",
            details,
        )

    covering = [a for a in candidates if a.terms.covers_owner(owner)]
    if not covering:
        return BlockReason(
            OWNER_NOT_COVERED,
            f"no agreement with {host_country_id} covers this owner",
            {**details, "agreement_ids": [a.agreement_id for a in candidates]},
        )

    in_terms = [
        a
        for a in covering
        if a.terms.covers_province(province.province_id)
        and a.terms.covers_building(building.building_id)
        and a.terms.covers_industry(building.industry_id)
    ]
    if not in_terms:
        return BlockReason(
            AGREEMENT_TERMS_EXCLUDE,
            f"agreements with {host_country_id} exclude this province, building or industry",
            {**details, "agreement_ids": [a.agreement_id for a in covering]},
        )

    exhausted: dict[str, list[dict[str, object]]] = {}
    for agreement in in_terms:
        breaches = batch.usage.exhausted_limits(agreement, province, exclude_self=existing is not None)
        if not breaches:
            return None
        exhausted[agreement.agreement_id] = [
            {"limit": _LIMIT_LABELS[b.scope], "count": b.count, "max": b.limit} for b in breaches
        ]
    first = next(iter(exhausted.values()))[0]
    return BlockReason(
        AGREEMENT_LIMIT_REACHED,
        f"agreement limit reached ({first['limit']} {first['count']}/{first['max']})",
        {**details, "exhausted": exhausted},
    )


def evaluate_building(
    building: BuildingDefinition,
    province: Province,
    owner: Owner,
    world: WorldState,
    *,
    batch: Optional[EvaluationBatch] = None,
    existing: Optional[EntryStatus] = None,
) -> EligibilityVerdict:
    """Evaluate one building/province/owner triple.

    ``existing`` marks an entry that is already built or under construction
    in ``province``; it is then left out of the counts it would otherwise
    contribute to itself.  Pass a shared ``batch`` when evaluating many
    candidates on the same snapshot.
    """

    batch = batch if batch is not None else prepare_batch(world)
    verdict = EligibilityVerdict(building_id=building.building_id, province_id=province.province_id)
    requirements = building.requirements
    if requirements is not None:
        owner_country_id = resolve_owner_country(
            owner, world.companies, province_owner_id=province.owner_country_id
        )
        reasons = verdict.reasons
        reasons.extend(_trait_reasons(requirements, province))
        reasons.extend(_resource_reasons(requirements, province))
        reasons.extend(_environment_reasons(requirements, province))
        reasons.extend(
            _building_count_reasons(batch, building, requirements, province, owner_country_id, existing)
        )
        reasons.extend(_access_reasons(requirements, owner, owner_country_id))
        if owner_country_id is None:
            reasons.append(
                BlockReason(OWNER_COUNTRY_UNKNOWN, "owner country unknown", {"owner": repr(owner)})
            )
        elif owner_country_id != province.owner_country_id:
            reason = _diplomacy_reason(batch, building, province, owner, owner_country_id, existing)
            if reason is not None:
                reasons.append(reason)
    _record_verdict(batch, verdict)
    return verdict


def _record_verdict(batch: EvaluationBatch, verdict: EligibilityVerdict) -> None:
    metrics = ensure_metrics(batch)
    metrics.inc("eligibility.evaluated")
    if verdict.active:
        return
    metrics.inc("eligibility.blocked")
    for code in verdict.codes:
        metrics.inc(f"{REASON_PREFIX}{code}")
    blocked = metrics.inc(f"eligibility.blocked_by_building.{verdict.building_id}")
    metrics.topk_add(
        "eligibility.blocked_buildings",
        verdict.building_id,
        blocked,
        k=batch.cfg.topk_blocked,
    )
    if batch.cfg.record_blocked_events:
        record_event(
            batch,
            {
                "type": "BUILDING_BLOCKED",
                "building_id": verdict.building_id,
                "province_id": verdict.province_id,
                "codes": verdict.codes,
            },
        )
    logger.debug(
        "building %s blocked in %s: %s",
        verdict.building_id,
        verdict.province_id,
        "; ".join(verdict.messages),
    )


def is_building_active(
    building: BuildingDefinition,
    province: Province,
    owner: Owner,
    world: WorldState,
    *,
    batch: Optional[EvaluationBatch] = None,
    existing: Optional[EntryStatus] = None,
) -> bool:
    return evaluate_building(building, province, owner, world, batch=batch, existing=existing).active


def inactive_reasons(
    building: BuildingDefinition,
    province: Province,
    owner: Owner,
    world: WorldState,
    *,
    batch: Optional[EvaluationBatch] = None,
    existing: Optional[EntryStatus] = None,
) -> list[str]:
    return evaluate_building(building, province, owner, world, batch=batch, existing=existing).messages


def _definition(world: WorldState, building_id: str) -> BuildingDefinition:
    # An id missing from the catalog carries no requirements.
    return world.buildings.get(building_id) or BuildingDefinition(building_id=building_id)


def evaluate_world(
    world: WorldState,
    *,
    batch: Optional[EvaluationBatch] = None,
) -> dict[EntryRef, EligibilityVerdict]:
    """Verdict for every built and in-progress entry in the snapshot."""

    batch = batch if batch is not None else prepare_batch(world)
    verdicts: dict[EntryRef, EligibilityVerdict] = {}
    for province_id in sorted(world.provinces):
        province = world.provinces[province_id]
        for index, built in enumerate(province.buildings_built):
            ref = EntryRef(province_id, built.building_id, "built", index)
            verdicts[ref] = evaluate_building(
                _definition(world, built.building_id),
                province,
                built.owner,
                world,
                batch=batch,
                existing="built",
            )
        for building_id in sorted(province.construction_progress):
            for index, entry in enumerate(province.construction_progress[building_id]):
                ref = EntryRef(province_id, building_id, "construction", index)
                verdicts[ref] = evaluate_building(
                    _definition(world, building_id),
                    province,
                    entry.owner,
                    world,
                    batch=batch,
                    existing="construction",
                )
    metrics = ensure_metrics(batch)
    metrics.set_gauge("eligibility.entries", len(verdicts))
    inactive = metrics.set_gauge("eligibility.inactive_entries", sum(1 for v in verdicts.values() if not v.active))
    logger.debug("evaluated %d entries, %d inactive: %s", len(verdicts), inactive, metrics.reason_counts())
    return verdicts


def can_build(
    world: WorldState,
    province_id: str,
    building_id: str,
    owner: Owner,
    *,
    batch: Optional[EvaluationBatch] = None,
) -> EligibilityVerdict:
    """Would a new construction of ``building_id`` in ``province_id`` be admitted?"""

    province = world.provinces.get(province_id)
    building = world.buildings.get(building_id)
    if province is None or building is None:
        verdict = EligibilityVerdict(building_id=building_id, province_id=province_id)
        if province is None:
            verdict.reasons.append(BlockReason(UNKNOWN_PROVINCE, f"unknown province {province_id}"))
        if building is None:
            verdict.reasons.append(BlockReason(UNKNOWN_BUILDING, f"unknown building {building_id}"))
        return verdict
    return evaluate_building(building, province, owner, world, batch=batch)


def buildable_options(
    world: WorldState,
    province_id: str,
    owner: Owner,
    *,
    batch: Optional[EvaluationBatch] = None,
) -> dict[str, EligibilityVerdict]:
    """Verdict for every catalog building as a new construction in ``province_id``."""

    province = world.provinces.get(province_id)
    if province is None:
        return {}
    batch = batch if batch is not None else prepare_batch(world)
    return {
        building_id: evaluate_building(world.buildings[building_id], province, owner, world, batch=batch)
        for building_id in sorted(world.buildings)
    }


__all__ = [
    "AGREEMENT_LIMIT_REACHED",
    "AGREEMENT_TERMS_EXCLUDE",
    "BUILDING_CAP_REACHED",
    "BlockReason",
    "COMPANY_NOT_ALLOWED",
    "COUNTRY_NOT_ALLOWED",
    "DEPENDENCY_UNMET",
    "EligibilityConfig",
    "EligibilityVerdict",
    "EntryRef",
    "EvaluationBatch",
    "LOGIC_UNSATISFIED",
    "NO_DIPLOMATIC_PERMISSION",
    "OWNER_COUNTRY_UNKNOWN",
    "OWNER_NOT_COVERED",
    "POLLUTION_OUT_OF_RANGE",
    "RADIATION_OUT_OF_RANGE",
    "RESOURCE_FORBIDDEN",
    "RESOURCE_MISSING",
    "TRAIT_MISMATCH",
    "UNKNOWN_BUILDING",
    "UNKNOWN_PROVINCE",
    "buildable_options",
    "can_build",
    "eligibility_config",
    "evaluate_building",
    "evaluate_world",
    "inactive_reasons",
    "is_building_active",
    "prepare_batch",
]
