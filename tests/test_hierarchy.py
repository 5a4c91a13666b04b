from __future__ import annotations

import random

from ucxt.analysis.hierarchy import infer_class_hierarchy, is_base_candidate
from ucxt.vm.symbols import ClassSymbol


def _classes(*specs):
    return [
        ClassSymbol(index=index, name=f"C{index}", num_vars=num_vars, method_ids=tuple(methods))
        for index, (num_vars, methods) in enumerate(specs)
    ]


def test_method_prefix_and_fewer_vars_make_a_base() -> None:
    classes = _classes((1, [10, 11]), (2, [10, 11, 12]))
    hierarchy = infer_class_hierarchy(classes)
    assert hierarchy.bases == (None, 0)
    assert hierarchy.edges() == [(1, 0)]
    assert hierarchy.inherited_vars(1) == 1
    assert hierarchy.base_class(classes[1]) is classes[0]


def test_mismatching_prefix_is_not_a_base() -> None:
    classes = _classes((1, [10, 11]), (2, [10, 99, 12]))
    assert infer_class_hierarchy(classes).bases == (None, None)


def test_more_vars_than_derived_is_not_a_base() -> None:
    classes = _classes((3, [10]), (2, [10, 11]))
    assert not is_base_candidate(classes[0], classes[1])
    assert infer_class_hierarchy(classes).roots() == [0, 1]


def test_closest_earlier_candidate_is_chosen() -> None:
    classes = _classes((1, [10]), (2, [10, 11]), (3, [10, 11, 12]))
    hierarchy = infer_class_hierarchy(classes)
    assert hierarchy.bases == (None, 0, 1)
    assert hierarchy.chain(2) == [2, 1, 0]


def test_later_classes_are_never_bases() -> None:
    classes = _classes((3, [10, 11, 12]), (1, [10]))
    assert infer_class_hierarchy(classes).bases == (None, None)


def test_random_hierarchies_are_acyclic_and_point_backwards() -> None:
    rng = random.Random(1234)
    for _ in range(50):
        specs = []
        for _ in range(rng.randint(1, 12)):
            methods = [rng.choice([10, 11, 12, 13]) for _ in range(rng.randint(0, 4))]
            specs.append((rng.randint(0, 4), methods))
        classes = _classes(*specs)
        hierarchy = infer_class_hierarchy(classes)
        for derived, base in hierarchy.edges():
            assert base < derived
            assert is_base_candidate(classes[base], classes[derived])
        for index in range(len(classes)):
            chain = hierarchy.chain(index)
            assert len(chain) == len(set(chain))
