from __future__ import annotations

import pytest

from code_insight.core.config import Thresholds
from code_insight.core.patterns import PatternDetector
from code_insight.core.treesitter.profiles import JAVASCRIPT, TSX, TYPESCRIPT


@pytest.fixture
def detector() -> PatternDetector:
    """Create a PatternDetector with default thresholds."""
    return PatternDetector()


def _run(detector, parse, source, profile=TYPESCRIPT):
    return detector.analyze(parse(source, profile), source, "sample.ts", profile)


def _kinds(findings):
    return [f.kind for f in findings]


class TestClassPatterns:
    """Design patterns recognized from class shape."""

    def test_singleton_with_static_accessor(self, detector, parse):
        source = """
class Config {
  private static instance: Config;
  private constructor() {}
  static getInstance(): Config { return Config.instance; }
}
"""
        patterns, _ = _run(detector, parse, source)
        singleton = next(p for p in patterns if p.kind == "singleton")

        assert singleton.confidence == pytest.approx(0.9)
        assert singleton.name == "Config"
        assert singleton.location.line == 2

    def test_singleton_from_decorator(self, detector, parse):
        source = "@Injectable()\nclass Cache {}\n"
        patterns, _ = _run(detector, parse, source)

        assert [(p.kind, p.confidence) for p in patterns] == [("singleton", pytest.approx(0.7))]

    def test_observer_confidence_depends_on_unsubscribe(self, detector, parse):
        full = "class Bus { subscribe(f) {} unsubscribe(f) {} notify() {} }"
        partial = "class Bus { subscribe(f) {} notify() {} }"

        full_patterns, _ = _run(detector, parse, full)
        partial_patterns, _ = _run(detector, parse, partial)

        assert next(p for p in full_patterns if p.kind == "observer").confidence == pytest.approx(0.9)
        assert next(p for p in partial_patterns if p.kind == "observer").confidence == pytest.approx(0.7)

    def test_repository_service_and_injection(self, detector, parse):
        source = """
class UserRepository { findById(id) {} save(user) {} }
class UserService { constructor(private repo: UserRepository) {} }
class WidgetFactory { createWidget() {} }
"""
        patterns, _ = _run(detector, parse, source)
        found = {(p.kind, p.name) for p in patterns}

        assert ("repository", "UserRepository") in found
        assert ("service_layer", "UserService") in found
        assert ("dependency_injection", "UserService") in found
        assert ("factory", "WidgetFactory") in found

    def test_god_class_threshold_is_exclusive(self, detector, parse):
        def make(count):
            methods = "\n".join(f"  m{i}() {{ return {i}; }}" for i in range(count))
            return f"class Big {{\n{methods}\n}}\n"

        _, at_limit = _run(detector, parse, make(20))
        _, over_limit = _run(detector, parse, make(21))

        assert "god_class" not in _kinds(at_limit)
        god = next(a for a in over_limit if a.kind == "god_class")
        assert god.severity == "high"

    def test_feature_envy(self, detector, parse):
        source = """
class Invoice {
  total(order) {
    return order.a + order.b + order.c + order.d + order.e + order.f;
  }
}
"""
        _, anti_patterns = _run(detector, parse, source)

        assert "feature_envy" in _kinds(anti_patterns)


class TestFunctionAntiPatterns:
    """Long methods and long parameter lists."""

    def test_long_method_threshold(self, detector, parse, long_function):
        _, at_limit = _run(detector, parse, long_function("ok", 30))
        _, over_limit = _run(detector, parse, long_function("tooLong", 31))

        assert "long_method" not in _kinds(at_limit)
        finding = next(a for a in over_limit if a.kind == "long_method")
        assert "tooLong" in finding.message

    def test_long_parameter_list(self, detector, parse):
        _, findings = _run(detector, parse, "function f(a, b, c, d, e) {}")

        assert _kinds(findings) == ["long_parameter_list"]


class TestTypeShapeAntiPatterns:
    """Anti-patterns that depend on type-system constructs."""

    def test_large_interface_and_wide_extends(self, detector, parse):
        members = "\n".join(f"  p{i}: string;" for i in range(11))
        source = f"interface Wide extends A, B, C {{\n{members}\n}}\n"
        _, findings = _run(detector, parse, source)

        assert sorted(_kinds(findings)) == ["deep_inheritance", "large_interface"]

    def test_complex_union(self, detector, parse):
        _, findings = _run(detector, parse, 'type Mode = "a" | "b" | "c" | "d" | "e" | "f";')
        _, small = _run(detector, parse, 'type Mode = "a" | "b" | "c";')

        assert _kinds(findings) == ["complex_union"]
        assert small == []

    def test_type_checks_are_skipped_without_the_capability(self, detector, parse):
        members = "\n".join(f"  p{i}: string;" for i in range(11))
        source = f"interface Wide {{\n{members}\n}}\n"
        _, findings = _run(detector, parse, source, JAVASCRIPT)

        assert findings == []

    def test_tight_coupling_counts_concrete_imports(self, detector, parse):
        concrete = 'import { UserRepo, OrderRepo, Mailer } from "./infra";'
        abstract = 'import type { UserRepo } from "./infra";\nimport { IOrders, IMailer, Clock } from "./ports";'

        _, coupled = _run(detector, parse, concrete)
        _, decoupled = _run(detector, parse, abstract)

        assert _kinds(coupled) == ["tight_coupling"]
        assert decoupled == []


class TestJsxPatterns:
    """JSX-only checks."""

    def test_prop_drilling(self, detector, parse):
        props = " ".join(f"p{i}={{{i}}}" for i in range(8))
        source = f"const view = <Child {props} />;"
        _, findings = _run(detector, parse, source, TSX)

        assert _kinds(findings) == ["prop_drilling"]

    def test_higher_order_component_naming(self, detector, parse):
        source = "const app = <ThemeProvider><App /></ThemeProvider>;"
        patterns, _ = _run(detector, parse, source, TSX)

        assert [p.name for p in patterns if p.kind == "higher_order_component"] == ["ThemeProvider"]


def test_custom_thresholds(parse) -> None:
    detector = PatternDetector(thresholds=Thresholds(long_parameter_list=6))
    _, findings = detector.analyze(parse("function f(a, b, c, d, e) {}"), "function f(a, b, c, d, e) {}")

    assert findings == []
