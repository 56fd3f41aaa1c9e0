"""
Structural design-pattern and anti-pattern detection.

Everything here is signature based: class and method names, member counts,
constructor arity and type shapes. Nothing is executed or type-checked.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from tree_sitter import Node, Tree

from .config import Thresholds
from .models import AntiPatternFinding, Location, PatternFinding
from .traversal import Handler, NodeKind, Visitor, function_name, walk
from .treesitter.profiles import TYPESCRIPT, LanguageProfile
from .utils import (
    class_members,
    class_name,
    function_body,
    member_name,
    named_children_of_type,
    node_text,
    parameter_count,
    statement_count,
)

CRUD_VERBS = ("find", "create", "update", "delete", "save")
SUBSCRIBE_NAMES = {"subscribe", "addlistener", "addobserver", "attach", "on"}
UNSUBSCRIBE_NAMES = {"unsubscribe", "removelistener", "removeobserver", "detach", "off"}
NOTIFY_NAMES = {"notify", "notifyobservers", "notifyall", "emit", "publish"}
SINGLETON_DECORATORS = {"Injectable", "Component"}
_SINGLETON_ACCESSOR_RE = re.compile(r"^get_?instance$", re.IGNORECASE)
_INTERFACE_NAME_RE = re.compile(r"^I[A-Z]")


def _location(file_id: str, node: Node) -> Location:
    return Location(file=file_id, line=node.start_point[0] + 1, column=node.start_point[1])


def _is_static(member: Node) -> bool:
    return any(child.type == "static" for child in member.children)


def _decorator_names(node: Node, source: bytes) -> List[str]:
    decorators = [c for c in node.children if c.type == "decorator"]
    # @Component() export class Foo {} puts the decorator on the export
    if node.parent is not None and node.parent.type == "export_statement":
        decorators.extend(c for c in node.parent.children if c.type == "decorator")
    names = []
    for decorator in decorators:
        text = node_text(source, decorator).lstrip("@")
        names.append(text.split("(", 1)[0].strip())
    return names


def _union_members(node: Node) -> int:
    count = 0
    pending = [node]
    while pending:
        current = pending.pop()
        for child in current.named_children:
            if child.type == "union_type":
                pending.append(child)
            elif child.type != "comment":
                count += 1
    return count


class _StructureVisitor(Visitor):
    name = "patterns"

    def __init__(self) -> None:
        self.classes: List[Node] = []
        self.functions: List[Node] = []
        self.interfaces: List[Node] = []
        self.unions: List[Node] = []
        self.jsx_elements: List[Node] = []
        self.imports: List[Node] = []

    def enter_table(self) -> Dict[NodeKind, Handler]:
        return {
            NodeKind.CLASS: self.classes.append,
            NodeKind.FUNCTION: self.functions.append,
            NodeKind.INTERFACE: self.interfaces.append,
            NodeKind.UNION_TYPE: self._union,
            NodeKind.JSX_ELEMENT: self.jsx_elements.append,
            NodeKind.IMPORT: self.imports.append,
        }

    def _union(self, node: Node) -> None:
        # a | b | c parses as nested unions; keep only the outermost
        if node.parent is None or node.parent.type != "union_type":
            self.unions.append(node)


class _ReceiverVisitor(Visitor):
    """Counts member accesses per receiver inside one method."""

    name = "receivers"

    def __init__(self, source: bytes) -> None:
        self.source = source
        self.own = 0
        self.external: Counter = Counter()

    def enter_table(self) -> Dict[NodeKind, Handler]:
        return {NodeKind.MEMBER: self._member}

    def _member(self, node: Node) -> None:
        obj = node.child_by_field_name("object")
        if obj is None:
            return
        if obj.type in ("this", "super"):
            self.own += 1
        else:
            self.external[node_text(self.source, obj)] += 1


@dataclass
class PatternDetector:
    """Classifies classes, functions and type shapes against known patterns."""
    thresholds: Thresholds = field(default_factory=Thresholds)

    def analyze(
        self,
        tree: Tree,
        text: str,
        file_id: str = "<memory>",
        profile: LanguageProfile = TYPESCRIPT,
        errors: Optional[List[str]] = None,
    ) -> Tuple[List[PatternFinding], List[AntiPatternFinding]]:
        source = text.encode("utf-8")
        structure = _StructureVisitor()
        if walk(tree, [structure]) and errors is not None:
            errors.append(structure.name)

        patterns: List[PatternFinding] = []
        anti_patterns: List[AntiPatternFinding] = []

        for node in structure.classes:
            self._class_patterns(node, source, file_id, profile, patterns, anti_patterns, errors)
        for node in structure.functions:
            self._function_anti_patterns(node, source, file_id, anti_patterns)

        if profile.interfaces:
            for node in structure.interfaces:
                self._interface_anti_patterns(node, source, file_id, anti_patterns)
            coupling = self._tight_coupling(structure.imports, source, file_id)
            if coupling is not None:
                anti_patterns.append(coupling)
        if profile.union_types:
            for node in structure.unions:
                members = _union_members(node)
                if members > self.thresholds.complex_union_types:
                    anti_patterns.append(AntiPatternFinding(
                        kind="complex_union",
                        location=_location(file_id, node),
                        severity="low",
                        message=f"Union type has {members} members",
                        suggestion="Introduce a named type or a discriminated union",
                    ))
        if profile.jsx:
            for node in structure.jsx_elements:
                self._jsx_findings(node, source, file_id, patterns, anti_patterns)
        return patterns, anti_patterns

    # --- classes ---

    def _class_patterns(self, node, source, file_id, profile, patterns, anti_patterns, errors) -> None:
        name = class_name(node, source)
        members = class_members(node)
        methods = [m for m in members if m.type == "method_definition"]
        method_names = {member_name(m, source): m for m in methods}
        lowered = {n.lower() for n in method_names}
        location = _location(file_id, node)
        constructor = method_names.get("constructor")
        ctor_params = parameter_count(constructor) if constructor is not None else 0

        if any(_SINGLETON_ACCESSOR_RE.match(n) and _is_static(m) for n, m in method_names.items()):
            patterns.append(PatternFinding(kind="singleton", location=location, confidence=0.9, name=name))
        elif profile.decorators and SINGLETON_DECORATORS & set(_decorator_names(node, source)):
            patterns.append(PatternFinding(kind="singleton", location=location, confidence=0.7, name=name))

        if any(n.startswith("create") for n in lowered):
            patterns.append(PatternFinding(kind="factory", location=location, confidence=0.8, name=name))

        if lowered & SUBSCRIBE_NAMES and lowered & NOTIFY_NAMES:
            confidence = 0.9 if lowered & UNSUBSCRIBE_NAMES else 0.7
            patterns.append(PatternFinding(kind="observer", location=location, confidence=confidence, name=name))

        if "Repository" in name and any(verb in n for n in lowered for verb in CRUD_VERBS):
            patterns.append(PatternFinding(kind="repository", location=location, confidence=0.9, name=name))

        if "Service" in name:
            confidence = 0.9 if ctor_params > 0 else 0.7
            patterns.append(PatternFinding(kind="service_layer", location=location, confidence=confidence, name=name))

        if ctor_params > 0:
            patterns.append(PatternFinding(kind="dependency_injection", location=location, confidence=0.8, name=name))

        if len(members) > self.thresholds.god_class_members:
            anti_patterns.append(AntiPatternFinding(
                kind="god_class",
                location=location,
                severity="high",
                message=f"Class {name} declares {len(members)} members",
                suggestion="Split the class into smaller classes with one responsibility each",
            ))

        for method in methods:
            receivers = _ReceiverVisitor(source)
            if walk(method, [receivers]) and errors is not None:
                errors.append(receivers.name)
            if not receivers.external:
                continue
            receiver, count = receivers.external.most_common(1)[0]
            if count > self.thresholds.feature_envy_references and count > receivers.own:
                method_name = member_name(method, source)
                anti_patterns.append(AntiPatternFinding(
                    kind="feature_envy",
                    location=_location(file_id, method),
                    severity="medium",
                    message=f"{name}.{method_name} uses {receiver} {count} times but its own members {receivers.own} times",
                    suggestion=f"Move the logic closer to {receiver}",
                ))

    # --- functions ---

    def _function_anti_patterns(self, node, source, file_id, anti_patterns) -> None:
        name = function_name(node, source)
        statements = statement_count(function_body(node))
        if statements > self.thresholds.long_method_statements:
            anti_patterns.append(AntiPatternFinding(
                kind="long_method",
                location=_location(file_id, node),
                severity="medium",
                message=f"{name} has {statements} statements",
                suggestion="Extract cohesive blocks into well-named helper functions",
            ))
        params = parameter_count(node)
        if params > self.thresholds.long_parameter_list:
            anti_patterns.append(AntiPatternFinding(
                kind="long_parameter_list",
                location=_location(file_id, node),
                severity="low",
                message=f"{name} takes {params} parameters",
                suggestion="Group related parameters into an options object",
            ))

    # --- type shapes ---

    def _interface_anti_patterns(self, node, source, file_id, anti_patterns) -> None:
        name = node_text(source, node.child_by_field_name("name"))
        body = node.child_by_field_name("body")
        members = [c for c in body.named_children if c.type != "comment"] if body is not None else []
        if len(members) > self.thresholds.large_interface_members:
            anti_patterns.append(AntiPatternFinding(
                kind="large_interface",
                location=_location(file_id, node),
                severity="medium",
                message=f"Interface {name} has {len(members)} members",
                suggestion="Segregate the interface into smaller role interfaces",
            ))
        extends = next((c for c in node.named_children if c.type == "extends_type_clause"), None)
        parents = len(extends.named_children) if extends is not None else 0
        if parents > self.thresholds.deep_inheritance_extends:
            anti_patterns.append(AntiPatternFinding(
                kind="deep_inheritance",
                location=_location(file_id, node),
                severity="medium",
                message=f"Interface {name} extends {parents} interfaces",
                suggestion="Prefer composition over wide interface inheritance",
            ))

    def _tight_coupling(self, imports: List[Node], source: bytes, file_id: str) -> Optional[AntiPatternFinding]:
        concrete = 0
        abstract = 0
        for node in imports:
            type_only = any(child.type == "type" for child in node.children)
            for specifier in _named_imports(node):
                imported = node_text(source, specifier.child_by_field_name("name"))
                if type_only or _INTERFACE_NAME_RE.match(imported):
                    abstract += 1
                elif imported[:1].isupper():
                    concrete += 1
        if concrete >= self.thresholds.tight_coupling_min_imports and concrete > abstract * self.thresholds.tight_coupling_ratio:
            return AntiPatternFinding(
                kind="tight_coupling",
                location=Location(file=file_id, line=1),
                severity="medium",
                message=f"Module imports {concrete} concrete classes and {abstract} abstractions",
                suggestion="Depend on interfaces instead of concrete classes",
            )
        return None

    def _jsx_findings(self, node, source, file_id, patterns, anti_patterns) -> None:
        element = node_text(source, node.child_by_field_name("name"))
        if "With" in element or "Provider" in element:
            patterns.append(PatternFinding(
                kind="higher_order_component",
                location=_location(file_id, node),
                confidence=0.6,
                name=element,
            ))
        props = sum(1 for c in node.named_children if c.type == "jsx_attribute")
        if props > self.thresholds.prop_drilling_props:
            anti_patterns.append(AntiPatternFinding(
                kind="prop_drilling",
                location=_location(file_id, node),
                severity="medium",
                message=f"<{element}> receives {props} props",
                suggestion="Use context or composition instead of passing props through many layers",
            ))


def _named_imports(node: Node) -> List[Node]:
    specifiers = []
    for clause in named_children_of_type(node, "import_clause"):
        for part in named_children_of_type(clause, "named_imports"):
            specifiers.extend(named_children_of_type(part, "import_specifier"))
    return specifiers
