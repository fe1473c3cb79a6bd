from __future__ import annotations

from itertools import product

import pytest

from dominion.state import Province
from dominion.world.requirements import LogicGroup, TraitLeaf, evaluate_requirement_node, iter_leaves

TRUE = TraitLeaf("climate", "desert")
FALSE = TraitLeaf("climate", "tundra")


def _province() -> Province:
    return Province(province_id="p-1", climate_id="desert", culture_id="nomad")


def _leaf(value: bool) -> TraitLeaf:
    return TRUE if value else FALSE


def test_leaf_matches_province_trait() -> None:
    province = _province()

    assert evaluate_requirement_node(TraitLeaf("culture", "nomad"), province)
    assert not evaluate_requirement_node(TraitLeaf("culture", "settled"), province)
    # absent attribute never matches
    assert not evaluate_requirement_node(TraitLeaf("religion", "sun"), province)


@pytest.mark.parametrize("value", [True, False])
def test_not_negates_single_child(value: bool) -> None:
    node = LogicGroup("not", (_leaf(value),))
    assert evaluate_requirement_node(node, _province()) is (not value)


@pytest.mark.parametrize("a,b", list(product([True, False], repeat=2)))
def test_binary_operators(a: bool, b: bool) -> None:
    province = _province()
    children = (_leaf(a), _leaf(b))

    assert evaluate_requirement_node(LogicGroup("and", children), province) is (a and b)
    assert evaluate_requirement_node(LogicGroup("or", children), province) is (a or b)
    assert evaluate_requirement_node(LogicGroup("xor", children), province) is (a != b)
    assert evaluate_requirement_node(LogicGroup("nand", children), province) is (not (a and b))
    assert evaluate_requirement_node(LogicGroup("nor", children), province) is (not (a or b))
    assert evaluate_requirement_node(LogicGroup("implies", children), province) is ((not a) or b)


@pytest.mark.parametrize("values", list(product([True, False], repeat=3)))
def test_eq_holds_when_all_children_agree(values) -> None:
    node = LogicGroup("eq", tuple(_leaf(v) for v in values))
    assert evaluate_requirement_node(node, _province()) is (len(set(values)) == 1)


def test_degenerate_groups() -> None:
    province = _province()

    assert evaluate_requirement_node(LogicGroup("not", ()), province)
    assert evaluate_requirement_node(LogicGroup("and", ()), province)
    assert not evaluate_requirement_node(LogicGroup("or", ()), province)
    assert evaluate_requirement_node(LogicGroup("implies", (FALSE,)), province)
    assert evaluate_requirement_node(LogicGroup("eq", (TRUE,)), province)
    # only the first two children take part in implies
    assert evaluate_requirement_node(LogicGroup("implies", (TRUE, TRUE, FALSE)), province)


def test_nested_groups() -> None:
    # (desert and not tundra) or religion=sun
    node = LogicGroup(
        "or",
        (
            LogicGroup("and", (TRUE, LogicGroup("not", (FALSE,)))),
            TraitLeaf("religion", "sun"),
        ),
    )
    assert evaluate_requirement_node(node, _province())


def test_deep_nesting_does_not_hit_recursion_limit() -> None:
    node = TRUE
    for _ in range(5000):
        node = LogicGroup("not", (node,))

    assert evaluate_requirement_node(node, _province()) is True
    assert evaluate_requirement_node(LogicGroup("not", (node,)), _province()) is False


def test_iter_leaves_is_depth_first() -> None:
    node = LogicGroup("and", (TraitLeaf("climate", "a"), LogicGroup("or", (TraitLeaf("culture", "b"),)), TraitLeaf("region", "c")))

    assert [leaf.category for leaf in iter_leaves(node)] == ["climate", "culture", "region"]
