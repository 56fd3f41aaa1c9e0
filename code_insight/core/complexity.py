"""
Complexity metrics: line counts, cyclomatic and cognitive complexity,
Halstead measures, maintainability index, per-function and per-class metrics.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from tree_sitter import Node, Tree

from .class_hierarchy import ClassHierarchy
from .models import (
    ClassMetric,
    ComplexityMetrics,
    FunctionMetric,
    HalsteadMetrics,
    LineMetrics,
)
from .traversal import (
    DECISION_KINDS,
    NESTING_KINDS,
    Handler,
    NodeKind,
    Visitor,
    function_name,
    operator_of,
    walk,
)
from .utils import (
    METHOD_MEMBER_TYPES,
    PROPERTY_MEMBER_TYPES,
    class_members,
    class_name,
    function_body,
    line_span,
    node_text,
    parameter_count,
    statement_count,
    superclass_name,
)


def compute_line_metrics(text: str) -> LineMetrics:
    """
    Classify every line as blank, comment or code in one pass.

    A line that opens a block comment, or sits inside one, counts as a
    comment line, as does a line starting with //.
    """
    metrics = LineMetrics()
    in_block_comment = False
    for raw in text.splitlines():
        metrics.total += 1
        line = raw.strip()
        if in_block_comment:
            metrics.comment += 1
            if "*/" in line:
                in_block_comment = False
            continue
        if not line:
            metrics.blank += 1
        elif line.startswith("//"):
            metrics.comment += 1
        elif line.startswith("/*"):
            metrics.comment += 1
            in_block_comment = "*/" not in line[2:]
        else:
            metrics.code += 1
    metrics.comment_ratio = metrics.comment / metrics.total if metrics.total else 0.0
    return metrics


def complexity_level(cyclomatic: int) -> str:
    if cyclomatic <= 10:
        return "low"
    if cyclomatic <= 20:
        return "moderate"
    if cyclomatic <= 50:
        return "high"
    return "very-high"


def maintainability_level(index: float) -> str:
    if index >= 85:
        return "excellent"
    if index >= 65:
        return "good"
    if index >= 40:
        return "fair"
    return "poor"


def maintainability_index(volume: float, cyclomatic: int, code_lines: int) -> float:
    raw = (
        171
        - 5.2 * math.log(max(volume, 1))
        - 0.23 * cyclomatic
        - 16.2 * math.log(max(code_lines, 1))
    )
    return max(0.0, min(100.0, raw))


class _ComplexityVisitor(Visitor):
    """Cyclomatic and cognitive complexity with a running nesting counter."""

    name = "complexity"

    def __init__(self) -> None:
        self.cyclomatic = 1
        self.cognitive = 0
        self.nesting = 0
        self.max_nesting = 0

    def enter_table(self) -> Dict[NodeKind, Handler]:
        table: Dict[NodeKind, Handler] = {kind: self._enter_decision for kind in DECISION_KINDS}
        for kind in NESTING_KINDS:
            table[kind] = self._enter_nested_decision if kind in DECISION_KINDS else self._enter_nesting
        table[NodeKind.SWITCH] = self._enter_switch
        return table

    def exit_table(self) -> Dict[NodeKind, Handler]:
        return {kind: self._exit_nesting for kind in NESTING_KINDS}

    def _enter_decision(self, node: Node) -> None:
        self.cyclomatic += 1
        self.cognitive += 1 + self.nesting

    def _enter_nesting(self, node: Node) -> None:
        self.nesting += 1
        self.max_nesting = max(self.max_nesting, self.nesting)

    def _enter_nested_decision(self, node: Node) -> None:
        self._enter_decision(node)
        self._enter_nesting(node)

    def _exit_nesting(self, node: Node) -> None:
        self.nesting -= 1

    def _enter_switch(self, node: Node) -> None:
        body = node.child_by_field_name("body")
        cases = sum(1 for c in body.named_children if c.type == "switch_case") if body else 0
        self.cognitive += max(cases - 1, 0)


class _HalsteadVisitor(Visitor):
    name = "halstead"

    def __init__(self, source: bytes) -> None:
        self.source = source
        self.operators: Counter = Counter()
        self.operands: Counter = Counter()

    def enter_table(self) -> Dict[NodeKind, Handler]:
        return {
            NodeKind.BINARY: self._operator,
            NodeKind.LOGICAL: self._operator,
            NodeKind.UNARY: self._operator,
            NodeKind.IDENTIFIER: self._operand,
            NodeKind.LITERAL: self._operand,
        }

    def _operator(self, node: Node) -> None:
        op = operator_of(node)
        if op:
            self.operators[op] += 1

    def _operand(self, node: Node) -> None:
        self.operands[node_text(self.source, node)] += 1

    def metrics(self) -> HalsteadMetrics:
        n1, n2 = len(self.operators), len(self.operands)
        total_operators = sum(self.operators.values())
        total_operands = sum(self.operands.values())
        vocabulary = n1 + n2
        length = total_operators + total_operands
        volume = length * math.log2(max(vocabulary, 1))
        difficulty = (n1 / 2) * (total_operands / max(n2, 1))
        effort = difficulty * volume
        return HalsteadMetrics(
            unique_operators=n1,
            unique_operands=n2,
            total_operators=total_operators,
            total_operands=total_operands,
            vocabulary=vocabulary,
            length=length,
            volume=volume,
            difficulty=difficulty,
            effort=effort,
            time=effort / 18,
            bugs_estimate=volume / 3000,
        )


class _StructureVisitor(Visitor):
    """Collects function-like and class-like nodes for per-unit metrics."""

    name = "structure"

    def __init__(self) -> None:
        self.functions: List[Node] = []
        self.classes: List[Node] = []

    def enter_table(self) -> Dict[NodeKind, Handler]:
        return {NodeKind.FUNCTION: self.functions.append, NodeKind.CLASS: self.classes.append}


class _FieldAccessVisitor(Visitor):
    """Names accessed as this.<name> inside one method."""

    name = "field-access"

    def __init__(self, source: bytes) -> None:
        self.source = source
        self.fields: Set[str] = set()

    def enter_table(self) -> Dict[NodeKind, Handler]:
        return {NodeKind.MEMBER: self._member}

    def _member(self, node: Node) -> None:
        obj = node.child_by_field_name("object")
        if obj is not None and obj.type == "this":
            self.fields.add(node_text(self.source, node.child_by_field_name("property")))


def lack_of_cohesion(field_sets: List[Set[str]]) -> float:
    """Henderson-Sellers LCOM: 1 minus the mean shared-field count over ordered method pairs."""
    methods = len(field_sets)
    if methods <= 1:
        return 0.0
    shared = 0
    for i, fields in enumerate(field_sets):
        for j, other in enumerate(field_sets):
            if i != j:
                shared += len(fields & other)
    return 1 - shared / (methods * (methods - 1))


@dataclass
class ComplexityEngine:
    """
    Computes ComplexityMetrics for one parsed file.

    Each analyze() call builds its own visitors, so the engine holds no state
    between files and can be shared across threads.
    """

    def analyze(self, tree: Tree, text: str, errors: Optional[List[str]] = None) -> ComplexityMetrics:
        source = text.encode("utf-8")
        counter = _ComplexityVisitor()
        halstead = _HalsteadVisitor(source)
        structure = _StructureVisitor()
        failed = walk(tree, [counter, halstead, structure])
        self._record(failed, errors)

        lines = compute_line_metrics(text)
        halstead_metrics = halstead.metrics()
        index = maintainability_index(halstead_metrics.volume, counter.cyclomatic, lines.code)

        per_function = [self.function_metric(fn, source, errors) for fn in structure.functions]
        per_class = self._class_metrics(structure.classes, source, errors)

        return ComplexityMetrics(
            cyclomatic_complexity=counter.cyclomatic,
            cognitive_complexity=counter.cognitive,
            halstead=halstead_metrics,
            maintainability_index=index,
            line_metrics=lines,
            per_function=per_function,
            per_class=per_class,
            complexity_level=complexity_level(counter.cyclomatic),
            maintainability_level=maintainability_level(index),
        )

    def function_metric(self, node: Node, source: bytes, errors: Optional[List[str]] = None) -> FunctionMetric:
        """Re-walk one function's subtree on its own."""
        counter = _ComplexityVisitor()
        self._record(walk(node, [counter]), errors)
        start, end = line_span(node)
        return FunctionMetric(
            name=function_name(node, source),
            line=start,
            cyclomatic_complexity=counter.cyclomatic,
            cognitive_complexity=counter.cognitive,
            parameter_count=parameter_count(node),
            line_count=end - start + 1,
            max_nesting_depth=counter.max_nesting,
            statement_count=statement_count(function_body(node)),
        )

    def _class_metrics(self, classes: List[Node], source: bytes, errors: Optional[List[str]]) -> List[ClassMetric]:
        metrics: List[ClassMetric] = []
        for node in classes:
            methods = [m for m in class_members(node) if m.type in METHOD_MEMBER_TYPES]
            properties = [m for m in class_members(node) if m.type in PROPERTY_MEMBER_TYPES]
            weighted = 0
            field_sets: List[Set[str]] = []
            for method in methods:
                if method.type != "method_definition":
                    # signatures have no body to measure
                    continue
                counter = _ComplexityVisitor()
                fields = _FieldAccessVisitor(source)
                self._record(walk(method, [counter, fields]), errors)
                weighted += counter.cyclomatic
                field_sets.append(fields.fields)
            start, _ = line_span(node)
            metrics.append(
                ClassMetric(
                    name=class_name(node, source),
                    line=start,
                    method_count=len(methods),
                    property_count=len(properties),
                    weighted_methods=weighted,
                    lack_of_cohesion=lack_of_cohesion(field_sets),
                    superclass=superclass_name(node, source),
                )
            )

        # file-local hierarchy; the aggregator recomputes depth project-wide
        hierarchy = ClassHierarchy.from_metrics(metrics)
        for metric in metrics:
            metric.inheritance_depth = hierarchy.depth(metric.name)
        return metrics

    @staticmethod
    def _record(failed: List[Visitor], errors: Optional[List[str]]) -> None:
        if failed and errors is not None:
            for visitor in failed:
                logging.debug(f"Complexity visitor {visitor.name} returned a partial result")
                errors.append(f"complexity:{visitor.name}")
