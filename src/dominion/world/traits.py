from __future__ import annotations

from typing import TYPE_CHECKING, Iterator, Optional

from dominion.state import TRAIT_CATEGORIES

from .buildings import Requirements, TraitCriteria

if TYPE_CHECKING:
    from dominion.state import Province


def normalize_trait_criteria(criteria: Optional[TraitCriteria], legacy_id: Optional[str] = None) -> TraitCriteria:
    """Fill ``any_of`` from the deprecated single-id field when it is unset."""

    any_of = criteria.any_of if criteria is not None and criteria.any_of is not None else None
    if any_of is None:
        any_of = (legacy_id,) if legacy_id else ()
    none_of = criteria.none_of if criteria is not None and criteria.none_of is not None else ()
    return TraitCriteria(any_of=tuple(any_of), none_of=tuple(none_of))


def criteria_satisfied(criteria: TraitCriteria, value: Optional[str]) -> bool:
    any_of = criteria.any_of or ()
    none_of = criteria.none_of or ()
    if any_of and (not value or value not in any_of):
        return False
    if none_of and value and value in none_of:
        return False
    return True


def trait_failures(requirements: Requirements, province: "Province") -> Iterator[str]:
    """Yield each trait category whose criteria the province fails, in catalog order."""

    for category in TRAIT_CATEGORIES:
        criteria, legacy_id = requirements.trait_criteria(category)
        if criteria is None and not legacy_id:
            continue
        if not criteria_satisfied(normalize_trait_criteria(criteria, legacy_id), province.trait(category)):
            yield category


__all__ = ["criteria_satisfied", "normalize_trait_criteria", "trait_failures"]
