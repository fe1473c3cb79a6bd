"""Diplomacy agreements as seen by the construction rules.

Agreements are stored the way diplomacy proposals create them: one record per
accepted proposal, optionally carrying ``counter_terms`` for what the guest
grants back to the host.  The rules only ever ask one directional question,
"what does host H let guest G build", so :func:`expand_agreements` mirrors
every counter grant into its own record and :func:`active_agreements` drops
expired ones.  Both run once per evaluation batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
from typing import Iterable, Mapping, Optional, Sequence

from dominion.state import CompanyOwner, Owner, StateOwner

logger = logging.getLogger(__name__)

CONSTRUCTION = "construction"


@dataclass(frozen=True, slots=True)
class UsageLimits:
    per_province: Optional[int] = None
    per_country: Optional[int] = None
    global_: Optional[int] = None

    def limit_for(self, scope: str) -> int:
        """Return the cap for ``scope``; 0 means unlimited."""

        value = {"province": self.per_province, "country": self.per_country, "global": self.global_}[scope]
        return int(value) if value and value > 0 else 0


@dataclass(frozen=True, slots=True)
class AgreementTerms:
    agreement_category: Optional[str] = None
    kind: Optional[str] = None
    allow_state: Optional[bool] = None
    allow_companies: Optional[bool] = None
    company_ids: tuple[str, ...] = ()
    building_ids: tuple[str, ...] = ()
    province_ids: tuple[str, ...] = ()
    industries: tuple[str, ...] = ()
    limits: UsageLimits = field(default_factory=UsageLimits)

    @property
    def category(self) -> str:
        return self.agreement_category or CONSTRUCTION

    def allows_state(self) -> bool:
        if self.allow_state is not None:
            return bool(self.allow_state)
        return self.kind == "state"

    def allows_companies(self) -> bool:
        if self.allow_companies is not None:
            return bool(self.allow_companies)
        return self.kind == "company"

    def covers_owner(self, owner: Owner) -> bool:
        match owner:
            case StateOwner():
                return self.allows_state()
            case CompanyOwner(company_id=company_id):
                if not self.allows_companies():
                    return False
                return not self.company_ids or company_id in self.company_ids
            case _:
                raise TypeError(f"Unsupported building owner: {owner!r}")

    def covers_province(self, province_id: str) -> bool:
        return not self.province_ids or province_id in self.province_ids

    def covers_building(self, building_id: str) -> bool:
        return not self.building_ids or building_id in self.building_ids

    def covers_industry(self, industry_id: Optional[str]) -> bool:
        if not self.industries:
            return True
        return bool(industry_id) and industry_id in self.industries


@dataclass(frozen=True, slots=True)
class DiplomacyAgreement:
    agreement_id: str
    host_country_id: str
    guest_country_id: str
    terms: AgreementTerms = field(default_factory=AgreementTerms)
    counter_terms: Optional[AgreementTerms] = None
    title: str = ""
    start_turn: Optional[int] = None
    duration_turns: Optional[int] = None
    reciprocal_of: Optional[str] = None


def resolve_agreement_terms(
    agreement: DiplomacyAgreement,
    host_country_id: str,
    guest_country_id: str,
) -> Optional[AgreementTerms]:
    """Terms ``host`` grants ``guest`` under a raw, unexpanded agreement."""

    if agreement.host_country_id == host_country_id and agreement.guest_country_id == guest_country_id:
        return agreement.terms
    if (
        agreement.host_country_id == guest_country_id
        and agreement.guest_country_id == host_country_id
        and agreement.counter_terms is not None
    ):
        return agreement.counter_terms
    return None


def mirror_agreement(agreement: DiplomacyAgreement) -> DiplomacyAgreement:
    if agreement.counter_terms is None:
        raise ValueError(f"Agreement {agreement.agreement_id} has no counter terms to mirror")
    return replace(
        agreement,
        agreement_id=f"{agreement.agreement_id}:counter",
        host_country_id=agreement.guest_country_id,
        guest_country_id=agreement.host_country_id,
        terms=agreement.counter_terms,
        counter_terms=None,
        reciprocal_of=agreement.agreement_id,
    )


def expand_agreements(agreements: Iterable[DiplomacyAgreement]) -> list[DiplomacyAgreement]:
    """Append a mirrored record for each counter grant.

    Expanding an already expanded list adds nothing: a source agreement whose
    reciprocal is present is not mirrored again.
    """

    source = list(agreements)
    mirrored = {a.reciprocal_of for a in source if a.reciprocal_of is not None}
    expanded = list(source)
    for agreement in source:
        if agreement.counter_terms is None or agreement.agreement_id in mirrored:
            continue
        expanded.append(mirror_agreement(agreement))
        mirrored.add(agreement.agreement_id)
    if len(expanded) != len(source):
        logger.debug("expanded %d agreements into %d directional records", len(source), len(expanded))
    return expanded


def is_agreement_active(agreement: DiplomacyAgreement, turn: int) -> bool:
    duration = agreement.duration_turns
    if not duration or duration <= 0:
        return True
    if agreement.start_turn is None:
        return True
    return turn - agreement.start_turn < duration


def active_agreements(agreements: Iterable[DiplomacyAgreement], turn: int) -> list[DiplomacyAgreement]:
    return [a for a in agreements if is_agreement_active(a, turn)]


def split_expired_agreements(
    agreements: Iterable[DiplomacyAgreement],
    turn: int,
) -> tuple[list[DiplomacyAgreement], list[DiplomacyAgreement]]:
    """Partition into ``(active, expired)``; the turn processor renews the latter."""

    active: list[DiplomacyAgreement] = []
    expired: list[DiplomacyAgreement] = []
    for agreement in agreements:
        (active if is_agreement_active(agreement, turn) else expired).append(agreement)
    return active, expired


def agreements_between(
    agreements: Iterable[DiplomacyAgreement],
    host_country_id: Optional[str],
    guest_country_id: Optional[str],
    *,
    category: Optional[str] = CONSTRUCTION,
) -> list[DiplomacyAgreement]:
    """Directional lookup over an expanded list.  ``category=None`` keeps every category."""

    return [
        a
        for a in agreements
        if a.host_country_id == host_country_id
        and a.guest_country_id == guest_country_id
        and (category is None or a.terms.category == category)
    ]


def index_agreements(
    agreements: Iterable[DiplomacyAgreement],
    *,
    category: Optional[str] = CONSTRUCTION,
) -> Mapping[tuple[str, str], Sequence[DiplomacyAgreement]]:
    index: dict[tuple[str, str], list[DiplomacyAgreement]] = {}
    for agreement in agreements:
        if category is not None and agreement.terms.category != category:
            continue
        index.setdefault((agreement.host_country_id, agreement.guest_country_id), []).append(agreement)
    return index


__all__ = [
    "AgreementTerms",
    "CONSTRUCTION",
    "DiplomacyAgreement",
    "UsageLimits",
    "active_agreements",
    "agreements_between",
    "expand_agreements",
    "index_agreements",
    "is_agreement_active",
    "mirror_agreement",
    "resolve_agreement_terms",
    "split_expired_agreements",
]
