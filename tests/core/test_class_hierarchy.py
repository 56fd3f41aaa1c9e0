from __future__ import annotations

from code_insight.core.class_hierarchy import ClassHierarchy
from code_insight.core.models import ClassMetric


def test_depth_follows_superclass_links() -> None:
    hierarchy = ClassHierarchy.from_metrics([
        ClassMetric(name="Base", line=1),
        ClassMetric(name="Middle", line=5, superclass="Base"),
        ClassMetric(name="Leaf", line=9, superclass="Middle"),
    ])

    assert hierarchy.depth("Base") == 0
    assert hierarchy.depth("Leaf") == 2
    assert hierarchy.depth("Middle") == 1


def test_memoized_depths_extend_correctly() -> None:
    hierarchy = ClassHierarchy()
    hierarchy.add("A", None)
    hierarchy.add("B", "A")
    assert hierarchy.depth("B") == 1

    hierarchy.add("C", "B")
    hierarchy.add("D", "C")

    assert hierarchy.depth("C") == 2
    assert hierarchy.depth("D") == 3


def test_undeclared_superclass_counts_as_one_level() -> None:
    hierarchy = ClassHierarchy()
    hierarchy.add("Widget", "React.Component")

    assert hierarchy.depth("Widget") == 1
    assert hierarchy.depth("Unknown") == 0


def test_declaration_with_superclass_wins() -> None:
    hierarchy = ClassHierarchy()
    hierarchy.add("Repo", "BaseRepo")
    hierarchy.add("Repo", None)

    assert hierarchy.parents["Repo"] == "BaseRepo"


def test_cyclic_links_terminate() -> None:
    hierarchy = ClassHierarchy()
    hierarchy.add("A", "B")
    hierarchy.add("B", "A")

    assert hierarchy.depth("A") in (0, 1)
    assert hierarchy.depth("B") in (0, 1)
