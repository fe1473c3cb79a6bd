from __future__ import annotations

from dominion.runtime import eligibility as elig
from dominion.runtime.diplomacy import AgreementTerms, DiplomacyAgreement, UsageLimits
from dominion.runtime.eligibility import (
    EligibilityConfig,
    EntryRef,
    buildable_options,
    can_build,
    eligibility_config,
    evaluate_building,
    evaluate_world,
    prepare_batch,
)
from dominion.state import (
    BuiltBuilding,
    Company,
    CompanyOwner,
    ConstructionEntry,
    Province,
    StateOwner,
    WorldState,
)
from dominion.world.buildings import BuildingDefinition, DependencyConstraint, Requirements, TraitCriteria, ValueRange
from dominion.world.dependencies import BuildingCensus, WorldScan


def _world() -> WorldState:
    world = WorldState(turn=4)
    world.add_company(Company(company_id="c-1", country_id="G"))
    world.add_buildings(
        [
            BuildingDefinition(building_id="farm", requirements=Requirements()),
            BuildingDefinition(
                building_id="mill",
                requirements=Requirements(buildings={"farm": DependencyConstraint(province=ValueRange(min=1))}),
            ),
            BuildingDefinition(
                building_id="oasis",
                requirements=Requirements(climate=TraitCriteria(any_of=("desert",))),
            ),
            BuildingDefinition(building_id="hut"),
        ]
    )
    world.add_province(
        Province(
            province_id="p-1",
            owner_country_id="A",
            climate_id="tundra",
            buildings_built=[
                BuiltBuilding("farm", CompanyOwner("c-1")),
                BuiltBuilding("farm", CompanyOwner("c-1")),
            ],
        )
    )
    world.add_province(
        Province(
            province_id="p-2",
            owner_country_id="A",
            climate_id="desert",
            buildings_built=[BuiltBuilding("oasis", StateOwner("A"))],
            construction_progress={"mill": [ConstructionEntry(owner=StateOwner("A"), progress=4.0)]},
        )
    )
    world.agreements = [
        DiplomacyAgreement(
            agreement_id="ag-1",
            host_country_id="A",
            guest_country_id="G",
            terms=AgreementTerms(allow_companies=True, limits=UsageLimits(per_province=2)),
        )
    ]
    return world


def test_prepare_batch_reads_world_without_writing() -> None:
    world = _world()
    batch = prepare_batch(world)

    assert batch.turn == 4
    assert isinstance(batch.counter, BuildingCensus)
    assert list(batch.agreement_index) == [("A", "G")]
    assert world.eligibility_cfg is None
    assert eligibility_config(world) == EligibilityConfig()
    assert prepare_batch(world, turn=9).turn == 9


def test_naive_rescan_gives_identical_verdicts() -> None:
    world = _world()
    census = evaluate_world(world)

    world.eligibility_cfg = EligibilityConfig(use_batch_census=False)
    batch = prepare_batch(world)
    assert isinstance(batch.counter, WorldScan)
    scanned = evaluate_world(world, batch=batch)

    assert {ref: v.codes for ref, v in census.items()} == {ref: v.codes for ref, v in scanned.items()}


def test_evaluate_world_covers_every_entry() -> None:
    verdicts = evaluate_world(_world())

    assert list(verdicts) == [
        EntryRef("p-1", "farm", "built", 0),
        EntryRef("p-1", "farm", "built", 1),
        EntryRef("p-2", "oasis", "built", 0),
        EntryRef("p-2", "mill", "construction", 0),
    ]
    # existing entries do not count against their own agreement slot
    assert verdicts[EntryRef("p-1", "farm", "built", 0)].active
    assert verdicts[EntryRef("p-2", "oasis", "built", 0)].active
    assert verdicts[EntryRef("p-2", "mill", "construction", 0)].codes == [elig.DEPENDENCY_UNMET]


def test_existing_entry_matches_fresh_candidate_against_the_rest() -> None:
    world = _world()
    world.provinces["p-1"].buildings_built.append(BuiltBuilding("farm", CompanyOwner("c-1")))

    verdicts = evaluate_world(world)

    assert not verdicts[EntryRef("p-1", "farm", "built", 2)].active
    del world.provinces["p-1"].buildings_built[2]
    fresh = evaluate_building(world.buildings["farm"], world.provinces["p-1"], CompanyOwner("c-1"), world)
    assert fresh.codes == verdicts[EntryRef("p-1", "farm", "built", 2)].codes


def test_buildable_options_lists_catalog() -> None:
    world = _world()
    options = buildable_options(world, "p-1", CompanyOwner("c-1"))

    assert sorted(options) == ["farm", "hut", "mill", "oasis"]
    assert options["farm"].codes == [elig.AGREEMENT_LIMIT_REACHED]
    assert options["hut"].active
    assert options["mill"].codes == [elig.AGREEMENT_LIMIT_REACHED]
    assert options["oasis"].codes == [elig.TRAIT_MISMATCH, elig.AGREEMENT_LIMIT_REACHED]
    assert buildable_options(world, "missing", StateOwner("A")) == {}


def test_can_build_reports_unknown_references() -> None:
    world = _world()

    assert can_build(world, "p-2", "farm", StateOwner("A")).active
    assert can_build(world, "p-9", "farm", StateOwner("A")).codes == [elig.UNKNOWN_PROVINCE]
    assert can_build(world, "p-1", "tower", StateOwner("A")).codes == [elig.UNKNOWN_BUILDING]


def test_shared_batch_accumulates_metrics() -> None:
    world = _world()
    batch = prepare_batch(world)

    evaluate_world(world, batch=batch)
    buildable_options(world, "p-1", CompanyOwner("c-1"), batch=batch)

    assert batch.metrics.get("eligibility.evaluated") == 8.0
    assert batch.metrics.gauges["eligibility.entries"] == 4
    assert batch.metrics.gauges["eligibility.inactive_entries"] == 1
