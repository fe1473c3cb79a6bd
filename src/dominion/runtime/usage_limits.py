"""Occupancy accounting for diplomacy agreement caps.

An agreement's ``limits`` bound how many of the guest's buildings it may
cover per province, across the host's provinces, and worldwide.  An entry
(built or in progress) consumes the allowance when the agreement would have
admitted it: owner type and company allowed, owned by the guest country, and
inside the province/building/industry allow-lists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Mapping, Optional

from dominion.state import Company, Owner, resolve_owner_country
from dominion.world.dependencies import SCOPES

from .diplomacy import DiplomacyAgreement

if TYPE_CHECKING:
    from dominion.state import Province, WorldState
    from dominion.world.buildings import BuildingDefinition


@dataclass(frozen=True, slots=True)
class LimitBreach:
    scope: str
    count: int
    limit: int


def entry_consumes_agreement(
    agreement: DiplomacyAgreement,
    *,
    owner: Owner,
    owner_country_id: Optional[str],
    building_id: str,
    industry_id: Optional[str],
    province_id: str,
) -> bool:
    terms = agreement.terms
    if not terms.covers_owner(owner):
        return False
    if owner_country_id is None or owner_country_id != agreement.guest_country_id:
        return False
    if not terms.covers_province(province_id):
        return False
    if not terms.covers_building(building_id):
        return False
    return terms.covers_industry(industry_id)


def count_agreement_usage(
    agreement: DiplomacyAgreement,
    provinces: Iterable["Province"],
    *,
    companies: Mapping[str, Company],
    buildings: Mapping[str, "BuildingDefinition"],
) -> int:
    """Sum built and in-progress entries in ``provinces`` that consume ``agreement``."""

    total = 0
    for province in provinces:
        for building_id, owner in province.iter_entries():
            definition = buildings.get(building_id)
            if entry_consumes_agreement(
                agreement,
                owner=owner,
                owner_country_id=resolve_owner_country(
                    owner, companies, province_owner_id=province.owner_country_id
                ),
                building_id=building_id,
                industry_id=definition.industry_id if definition is not None else None,
                province_id=province.province_id,
            ):
                total += 1
    return total


def scope_provinces(world: "WorldState", scope: str, province: "Province", host_country_id: str) -> list["Province"]:
    if scope == "province":
        return [province]
    if scope == "country":
        return world.provinces_owned_by(host_country_id)
    return list(world.provinces.values())


@dataclass(slots=True)
class AgreementUsage:
    """Usage counter for one evaluation batch.

    With ``memoize`` the count per (agreement, scope, province) is computed
    once; the snapshot must not change while the batch is alive.
    """

    world: "WorldState"
    memoize: bool = True
    memo: dict[tuple[int, str, Optional[str]], int] = field(default_factory=dict)

    def count(self, agreement: DiplomacyAgreement, scope: str, province: "Province") -> int:
        key = (id(agreement), scope, province.province_id if scope == "province" else None)
        if self.memoize and key in self.memo:
            return self.memo[key]
        value = count_agreement_usage(
            agreement,
            scope_provinces(self.world, scope, province, agreement.host_country_id),
            companies=self.world.companies,
            buildings=self.world.buildings,
        )
        if self.memoize:
            self.memo[key] = value
        return value

    def exhausted_limits(
        self,
        agreement: DiplomacyAgreement,
        province: "Province",
        *,
        exclude_self: bool = False,
    ) -> list[LimitBreach]:
        """Scopes whose positive limit the current occupancy already reaches.

        The candidate is not part of the occupancy; an existing entry being
        re-evaluated passes ``exclude_self`` so its own slot is not held
        against it.
        """

        breaches: list[LimitBreach] = []
        for scope in SCOPES:
            limit = agreement.terms.limits.limit_for(scope)
            if limit <= 0:
                continue
            count = self.count(agreement, scope, province)
            if exclude_self:
                count -= 1
            if count >= limit:
                breaches.append(LimitBreach(scope, count, limit))
        return breaches


__all__ = [
    "AgreementUsage",
    "LimitBreach",
    "count_agreement_usage",
    "entry_consumes_agreement",
    "scope_provinces",
]
