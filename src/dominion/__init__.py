"""Dominion building-eligibility rules package public façade."""

from .state import (
    BuiltBuilding,
    Company,
    CompanyOwner,
    ConstructionEntry,
    Country,
    Owner,
    Province,
    StateOwner,
    WorldState,
    resolve_owner_country,
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
from .world.requirements import LogicGroup, TraitLeaf, evaluate_requirement_node
from .runtime.diplomacy import (
    AgreementTerms,
    DiplomacyAgreement,
    UsageLimits,
    expand_agreements,
    split_expired_agreements,
)
from .runtime.eligibility import (
    BlockReason,
    EligibilityConfig,
    EligibilityVerdict,
    EntryRef,
    EvaluationBatch,
    buildable_options,
    can_build,
    evaluate_building,
    evaluate_world,
    inactive_reasons,
    is_building_active,
    prepare_batch,
)
from .payloads import PayloadError, world_from_payload

__all__ = [
    "AgreementTerms",
    "BlockReason",
    "BuildingDefinition",
    "BuiltBuilding",
    "Company",
    "CompanyOwner",
    "ConstructionEntry",
    "Country",
    "DependencyConstraint",
    "DiplomacyAgreement",
    "EligibilityConfig",
    "EligibilityVerdict",
    "EntryRef",
    "EvaluationBatch",
    "Industry",
    "LogicGroup",
    "Owner",
    "PayloadError",
    "Province",
    "Requirements",
    "ResourceCriteria",
    "StateOwner",
    "TraitCriteria",
    "TraitLeaf",
    "UsageLimits",
    "ValueRange",
    "WorldState",
    "buildable_options",
    "can_build",
    "evaluate_building",
    "evaluate_requirement_node",
    "evaluate_world",
    "expand_agreements",
    "inactive_reasons",
    "is_building_active",
    "prepare_batch",
    "resolve_owner_country",
    "split_expired_agreements",
    "world_from_payload",
]
