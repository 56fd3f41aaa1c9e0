"""
Depth-first traversal of tree-sitter trees with per-kind dispatch.

Node types are classified once into a NodeKind. Visitors declare enter and
exit dispatch tables keyed by NodeKind, and walk() calls the matching handler
before and after a node's children. A visitor whose handler raises is logged
and dropped for the rest of the walk while the other visitors carry on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Union

from tree_sitter import Node, Tree

from .treesitter.profiles import LanguageProfile


class NodeKind(Enum):
    PROGRAM = "program"
    FUNCTION = "function"
    CLASS = "class"
    INTERFACE = "interface"
    IF = "if"
    TERNARY = "ternary"
    SWITCH = "switch"
    SWITCH_CASE = "switch_case"
    LOOP = "loop"
    CATCH = "catch"
    TRY = "try"
    LOGICAL = "logical"
    BINARY = "binary"
    UNARY = "unary"
    IMPORT = "import"
    EXPORT = "export"
    CALL = "call"
    NEW = "new"
    MEMBER = "member"
    IDENTIFIER = "identifier"
    LITERAL = "literal"
    VARIABLE_DECLARATOR = "variable_declarator"
    FIELD = "field"
    PROPERTY = "property"
    ASSIGNMENT = "assignment"
    JSX_ELEMENT = "jsx_element"
    DECORATOR = "decorator"
    UNION_TYPE = "union_type"
    TYPE_ASSERTION = "type_assertion"
    PREDEFINED_TYPE = "predefined_type"
    OTHER = "other"


_KIND_BY_TYPE: Dict[str, NodeKind] = {
    "program": NodeKind.PROGRAM,
    "function_declaration": NodeKind.FUNCTION,
    "generator_function_declaration": NodeKind.FUNCTION,
    "function_expression": NodeKind.FUNCTION,
    "function": NodeKind.FUNCTION,
    "generator_function": NodeKind.FUNCTION,
    "arrow_function": NodeKind.FUNCTION,
    "method_definition": NodeKind.FUNCTION,
    "class_declaration": NodeKind.CLASS,
    "abstract_class_declaration": NodeKind.CLASS,
    "class": NodeKind.CLASS,
    "interface_declaration": NodeKind.INTERFACE,
    "if_statement": NodeKind.IF,
    "ternary_expression": NodeKind.TERNARY,
    "switch_statement": NodeKind.SWITCH,
    "switch_case": NodeKind.SWITCH_CASE,
    "for_statement": NodeKind.LOOP,
    "for_in_statement": NodeKind.LOOP,
    "while_statement": NodeKind.LOOP,
    "do_statement": NodeKind.LOOP,
    "catch_clause": NodeKind.CATCH,
    "try_statement": NodeKind.TRY,
    "binary_expression": NodeKind.BINARY,
    "unary_expression": NodeKind.UNARY,
    "update_expression": NodeKind.UNARY,
    "import_statement": NodeKind.IMPORT,
    "export_statement": NodeKind.EXPORT,
    "call_expression": NodeKind.CALL,
    "new_expression": NodeKind.NEW,
    "member_expression": NodeKind.MEMBER,
    "identifier": NodeKind.IDENTIFIER,
    "property_identifier": NodeKind.IDENTIFIER,
    "shorthand_property_identifier": NodeKind.IDENTIFIER,
    "private_property_identifier": NodeKind.IDENTIFIER,
    "string": NodeKind.LITERAL,
    "template_string": NodeKind.LITERAL,
    "number": NodeKind.LITERAL,
    "true": NodeKind.LITERAL,
    "false": NodeKind.LITERAL,
    "null": NodeKind.LITERAL,
    "undefined": NodeKind.LITERAL,
    "regex": NodeKind.LITERAL,
    "variable_declarator": NodeKind.VARIABLE_DECLARATOR,
    "public_field_definition": NodeKind.FIELD,
    "field_definition": NodeKind.FIELD,
    "pair": NodeKind.PROPERTY,
    "assignment_expression": NodeKind.ASSIGNMENT,
    "augmented_assignment_expression": NodeKind.ASSIGNMENT,
    "jsx_opening_element": NodeKind.JSX_ELEMENT,
    "jsx_self_closing_element": NodeKind.JSX_ELEMENT,
    "decorator": NodeKind.DECORATOR,
    "union_type": NodeKind.UNION_TYPE,
    "as_expression": NodeKind.TYPE_ASSERTION,
    "predefined_type": NodeKind.PREDEFINED_TYPE,
}

LOGICAL_OPERATORS = frozenset({"&&", "||"})

DECISION_KINDS: FrozenSet[NodeKind] = frozenset({
    NodeKind.IF,
    NodeKind.TERNARY,
    NodeKind.SWITCH_CASE,
    NodeKind.LOOP,
    NodeKind.CATCH,
    NodeKind.LOGICAL,
})

NESTING_KINDS: FrozenSet[NodeKind] = frozenset({
    NodeKind.IF,
    NodeKind.LOOP,
    NodeKind.SWITCH_CASE,
    NodeKind.TRY,
})

Handler = Callable[[Node], None]


def operator_of(node: Node) -> str:
    op = node.child_by_field_name("operator")
    return op.type if op is not None else ""


def classify(node: Node) -> NodeKind:
    """Map a tree-sitter node to its NodeKind.

    Anonymous tokens share type names with some named nodes (the `function`
    keyword, for one), so only named nodes are classified.
    """
    if not node.is_named:
        return NodeKind.OTHER
    kind = _KIND_BY_TYPE.get(node.type, NodeKind.OTHER)
    if kind is NodeKind.BINARY and operator_of(node) in LOGICAL_OPERATORS:
        return NodeKind.LOGICAL
    return kind


def is_function_like(node: Node) -> bool:
    return classify(node) is NodeKind.FUNCTION


def is_class_like(node: Node) -> bool:
    return classify(node) is NodeKind.CLASS


def is_decision_point(node: Node) -> bool:
    return classify(node) in DECISION_KINDS


def is_nesting_construct(node: Node) -> bool:
    return classify(node) in NESTING_KINDS


def is_literal(node: Node) -> bool:
    return classify(node) is NodeKind.LITERAL


def is_identifier(node: Node) -> bool:
    return classify(node) is NodeKind.IDENTIFIER


def is_import_like(node: Node) -> bool:
    """True for import statements, re-exports and require()/import() calls."""
    kind = classify(node)
    if kind is NodeKind.IMPORT:
        return True
    if kind is NodeKind.EXPORT:
        return node.child_by_field_name("source") is not None
    if kind is NodeKind.CALL:
        callee = node.child_by_field_name("function")
        if callee is None:
            return False
        if callee.type == "import":
            return True
        return callee.type == "identifier" and callee.text == b"require"
    return False


@dataclass
class SourceUnit:
    """One file's text and parse tree, alive only while the file is analyzed."""
    path: str
    text: str
    profile: LanguageProfile
    tree: Optional[Tree] = None

    @property
    def source(self) -> bytes:
        return self.text.encode("utf-8")


class Visitor:
    """Base class for traversal visitors.

    Subclasses return dispatch tables from enter_table() and exit_table().
    """

    name = "visitor"

    def enter_table(self) -> Dict[NodeKind, Handler]:
        return {}

    def exit_table(self) -> Dict[NodeKind, Handler]:
        return {}


def root_node(target: Union[Tree, Node]) -> Node:
    """Return the node a walk starts from.

    A bare statement or expression node is accepted as a synthetic root, so a
    single function body can be re-walked on its own.
    """
    if isinstance(target, Tree):
        return target.root_node
    return target


def walk(target: Union[Tree, Node], visitors: List[Visitor]) -> List[Visitor]:
    """
    Walk a tree depth-first, calling enter handlers before a node's children
    and exit handlers after them.

    The walk uses an explicit stack, so deeply nested input cannot hit the
    interpreter recursion limit.

    Args:
        target: Tree or subtree node to walk
        visitors: Visitors to dispatch to, in call order

    Returns:
        The visitors that raised and were dropped from the walk
    """
    active = [(v, v.enter_table(), v.exit_table()) for v in visitors]
    failed: List[Visitor] = []

    def dispatch(node: Node, kind: NodeKind, leaving: bool) -> None:
        for entry in list(active):
            visitor, enter, exit_ = entry
            handler = (exit_ if leaving else enter).get(kind)
            if handler is None:
                continue
            try:
                handler(node)
            except Exception as e:
                logging.warning(
                    f"Visitor {visitor.name} failed at line {node.start_point[0] + 1} "
                    f"({node.type}): {e}; skipping it for the rest of this walk"
                )
                active.remove(entry)
                failed.append(visitor)

    stack = [(root_node(target), False)]
    while stack and active:
        node, leaving = stack.pop()
        kind = classify(node)
        dispatch(node, kind, leaving)
        if leaving:
            continue
        stack.append((node, True))
        stack.extend((child, False) for child in reversed(node.children))
    return failed


def function_name(node: Node, source: bytes) -> str:
    """Best-effort name of a function-like node."""
    name_node = node.child_by_field_name("name")
    if name_node is not None:
        return source[name_node.start_byte:name_node.end_byte].decode("utf-8", errors="replace")
    parent = node.parent
    # const handler = () => {...}; obj = { handler: function () {...} }
    if parent is not None and parent.type in ("variable_declarator", "pair", "public_field_definition"):
        key = parent.child_by_field_name("name") or parent.child_by_field_name("key")
        if key is not None:
            return source[key.start_byte:key.end_byte].decode("utf-8", errors="replace")
    if parent is not None and parent.type == "assignment_expression":
        left = parent.child_by_field_name("left")
        if left is not None:
            return source[left.start_byte:left.end_byte].decode("utf-8", errors="replace")
    return "<anonymous>"
