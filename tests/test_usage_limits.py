from __future__ import annotations

from dominion.runtime.diplomacy import AgreementTerms, DiplomacyAgreement, UsageLimits
from dominion.runtime.eligibility import AGREEMENT_LIMIT_REACHED, can_build
from dominion.runtime.usage_limits import AgreementUsage, count_agreement_usage, entry_consumes_agreement
from dominion.state import (
    BuiltBuilding,
    Company,
    CompanyOwner,
    ConstructionEntry,
    Province,
    StateOwner,
    WorldState,
)
from dominion.world.buildings import BuildingDefinition, Requirements


def _agreement(limits: UsageLimits, **terms) -> DiplomacyAgreement:
    return DiplomacyAgreement(
        agreement_id="ag-1",
        host_country_id="A",
        guest_country_id="G",
        terms=AgreementTerms(allow_companies=True, limits=limits, **terms),
    )


def _world(agreement: DiplomacyAgreement, existing_in_p1: int = 0) -> WorldState:
    world = WorldState(turn=1)
    world.add_company(Company(company_id="c-1", country_id="G"))
    world.add_company(Company(company_id="c-home", country_id="A"))
    world.add_buildings(
        [
            BuildingDefinition(building_id="farm", industry_id="agri", requirements=Requirements()),
            BuildingDefinition(building_id="mine", industry_id="mining", requirements=Requirements()),
        ]
    )
    world.add_province(
        Province(
            province_id="p-1",
            owner_country_id="A",
            buildings_built=[BuiltBuilding("farm", CompanyOwner("c-1")) for _ in range(existing_in_p1)],
        )
    )
    world.add_province(Province(province_id="p-2", owner_country_id="A"))
    world.add_province(Province(province_id="g-1", owner_country_id="G"))
    world.agreements = [agreement]
    return world


def test_per_province_limit_rejects_third_entry() -> None:
    agreement = _agreement(UsageLimits(per_province=2))

    full = can_build(_world(agreement, existing_in_p1=2), "p-1", "farm", CompanyOwner("c-1"))
    assert not full.active
    assert full.codes == [AGREEMENT_LIMIT_REACHED]

    assert can_build(_world(agreement, existing_in_p1=1), "p-1", "farm", CompanyOwner("c-1")).active
    # another province of the host still has room
    assert can_build(_world(agreement, existing_in_p1=2), "p-2", "farm", CompanyOwner("c-1")).active


def test_global_limit_counts_entries_anywhere() -> None:
    agreement = _agreement(UsageLimits(global_=1))
    world = _world(agreement)
    world.provinces["g-1"].buildings_built.append(BuiltBuilding("mine", CompanyOwner("c-1")))

    verdict = can_build(world, "p-1", "farm", CompanyOwner("c-1"))
    assert verdict.codes == [AGREEMENT_LIMIT_REACHED]
    assert "global" in verdict.messages[0]

    unlimited = _world(_agreement(UsageLimits(global_=0)), existing_in_p1=5)
    assert can_build(unlimited, "p-1", "farm", CompanyOwner("c-1")).active
    assert can_build(_world(_agreement(UsageLimits()), existing_in_p1=5), "p-1", "farm", CompanyOwner("c-1")).active


def test_per_country_limit_counts_host_provinces_only() -> None:
    agreement = _agreement(UsageLimits(per_country=1))
    world = _world(agreement)
    world.provinces["g-1"].buildings_built.append(BuiltBuilding("farm", CompanyOwner("c-1")))

    assert can_build(world, "p-1", "farm", CompanyOwner("c-1")).active

    world.provinces["p-2"].construction_progress["farm"] = [ConstructionEntry(owner=CompanyOwner("c-1"))]
    assert can_build(world, "p-1", "farm", CompanyOwner("c-1")).codes == [AGREEMENT_LIMIT_REACHED]


def test_entry_consumes_only_when_agreement_would_admit_it() -> None:
    agreement = _agreement(UsageLimits(), industries=("agri",))
    common = dict(owner_country_id="G", building_id="farm", industry_id="agri", province_id="p-1")

    assert entry_consumes_agreement(agreement, owner=CompanyOwner("c-1"), **common)
    assert not entry_consumes_agreement(agreement, owner=StateOwner("G"), **common)
    assert not entry_consumes_agreement(agreement, owner=CompanyOwner("c-1"), **{**common, "owner_country_id": "A"})
    assert not entry_consumes_agreement(agreement, owner=CompanyOwner("c-1"), **{**common, "owner_country_id": None})
    assert not entry_consumes_agreement(agreement, owner=CompanyOwner("c-1"), **{**common, "industry_id": "mining"})


def test_usage_counts_built_and_in_progress() -> None:
    agreement = _agreement(UsageLimits())
    world = _world(agreement, existing_in_p1=1)
    province = world.provinces["p-1"]
    province.construction_progress["farm"] = [ConstructionEntry(owner=CompanyOwner("c-1"), progress=3.0)]
    province.buildings_built.append(BuiltBuilding("farm", CompanyOwner("c-home")))
    province.buildings_built.append(BuiltBuilding("farm", StateOwner("G")))

    assert count_agreement_usage(agreement, [province], companies=world.companies, buildings=world.buildings) == 2


def test_exhausted_limits_and_memo() -> None:
    agreement = _agreement(UsageLimits(per_province=2, per_country=5))
    world = _world(agreement, existing_in_p1=2)
    province = world.provinces["p-1"]

    memoized = AgreementUsage(world)
    naive = AgreementUsage(world, memoize=False)

    breaches = memoized.exhausted_limits(agreement, province)
    assert [(b.scope, b.count, b.limit) for b in breaches] == [("province", 2, 2)]
    assert naive.exhausted_limits(agreement, province) == breaches
    assert memoized.exhausted_limits(agreement, province, exclude_self=True) == []
    assert memoized.memo
    assert not naive.memo
