from __future__ import annotations

import math

import pytest

from code_insight.core.complexity import (
    ComplexityEngine,
    complexity_level,
    compute_line_metrics,
    lack_of_cohesion,
    maintainability_index,
    maintainability_level,
)


@pytest.fixture
def engine() -> ComplexityEngine:
    """Create a ComplexityEngine instance for testing."""
    return ComplexityEngine()


def _function(metrics, name):
    return next(f for f in metrics.per_function if f.name == name)


def test_straight_line_function_has_base_complexity(engine, parse) -> None:
    source = "function plain(a: number) { const b = a * 2; return b; }"
    metrics = engine.analyze(parse(source), source)
    fn = _function(metrics, "plain")

    assert fn.cyclomatic_complexity == 1
    assert fn.cognitive_complexity == 0
    assert fn.max_nesting_depth == 0
    assert fn.parameter_count == 1
    assert fn.statement_count == 2


def test_nested_conditions_weigh_more_in_cognitive_complexity(engine, parse) -> None:
    source = """
function nested(a, b) {
  if (a) {
    if (b) {
      return 1;
    }
  }
  return 0;
}
"""
    fn = _function(engine.analyze(parse(source), source), "nested")

    assert fn.cyclomatic_complexity == 3
    assert fn.cognitive_complexity == 3
    assert fn.max_nesting_depth == 2


def test_logical_operators_are_decision_points(engine, parse) -> None:
    source = "function check(a, b) { return (a && b) || a; }"
    fn = _function(engine.analyze(parse(source), source), "check")

    assert fn.cyclomatic_complexity == 3
    assert fn.cognitive_complexity == 2


def test_each_switch_case_adds_a_path(engine, parse) -> None:
    source = """
function pick(x) {
  switch (x) {
    case 1: return "one";
    case 2: return "two";
    default: return "many";
  }
}
"""
    fn = _function(engine.analyze(parse(source), source), "pick")

    assert fn.cyclomatic_complexity == 3


def test_file_complexity_is_never_below_one(engine, parse) -> None:
    metrics = engine.analyze(parse(""), "")

    assert metrics.cyclomatic_complexity == 1
    assert metrics.per_function == []
    assert metrics.complexity_level == "low"


def test_halstead_measures_are_consistent(engine, parse) -> None:
    source = "const total = price * quantity + tax;\nconst flag = !done && total > 10;"
    h = engine.analyze(parse(source), source).halstead

    assert h.vocabulary == h.unique_operators + h.unique_operands
    assert h.length == h.total_operators + h.total_operands
    assert h.volume == pytest.approx(h.length * math.log2(max(h.vocabulary, 1)))
    assert h.bugs_estimate == pytest.approx(h.volume / 3000)
    assert h.unique_operators >= 4


def test_maintainability_index_stays_in_range(engine, parse) -> None:
    big = "\n".join(f"if (x{i} && y{i} || z{i}) {{ total += x{i} * y{i} - z{i}; }}" for i in range(400))
    for source in ("", "const a = 1;", big):
        index = engine.analyze(parse(source), source).maintainability_index
        assert 0.0 <= index <= 100.0

    assert maintainability_index(0, 1, 0) == 100.0
    assert maintainability_index(1e12, 500, 1_000_000) == 0.0


def test_repeated_analysis_gives_identical_results(engine, parse) -> None:
    source = "class A { x = 1; get() { return this.x > 0 ? this.x : 0; } }"
    tree = parse(source)

    assert engine.analyze(tree, source) == engine.analyze(tree, source)


def test_line_metrics_classify_comments_and_blanks() -> None:
    text = "// header\n\nconst a = 1;\n/* block\n   still block\n*/\nconst b = 2; // trailing\n"
    lines = compute_line_metrics(text)

    assert lines.total == 7
    assert lines.blank == 1
    assert lines.comment == 4
    assert lines.code == 2
    assert lines.comment_ratio == pytest.approx(4 / 7)


def test_class_metrics(engine, parse) -> None:
    source = """
class Account {
  balance = 0;
  owner = "";
  deposit(amount) { if (amount > 0) { this.balance += amount; } }
  rename(name) { this.owner = name; }
}
"""
    cls = engine.analyze(parse(source), source).per_class[0]

    assert cls.name == "Account"
    assert cls.method_count == 2
    assert cls.property_count == 2
    assert cls.weighted_methods == 3
    assert cls.lack_of_cohesion == pytest.approx(1.0)
    assert cls.inheritance_depth == 0


def test_inheritance_depth_within_one_file(engine, parse) -> None:
    source = "class A {}\nclass B extends A {}\nclass C extends B {}"
    depths = {c.name: c.inheritance_depth for c in engine.analyze(parse(source), source).per_class}

    assert depths == {"A": 0, "B": 1, "C": 2}


def test_lack_of_cohesion() -> None:
    assert lack_of_cohesion([]) == 0.0
    assert lack_of_cohesion([{"a"}]) == 0.0
    assert lack_of_cohesion([{"a"}, {"a"}]) == 0.0
    assert lack_of_cohesion([{"a"}, {"b"}]) == 1.0


def test_levels() -> None:
    assert complexity_level(10) == "low"
    assert complexity_level(11) == "moderate"
    assert complexity_level(51) == "very-high"
    assert maintainability_level(90) == "excellent"
    assert maintainability_level(70) == "good"
    assert maintainability_level(10) == "poor"
