"""
Heuristic security checks.

Each check looks at one node and at most one hop around it (a call's first
argument, an assignment's two sides). There is no data-flow tracking, so
findings are hints to review rather than proof of a vulnerability.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from tree_sitter import Node, Tree

from .models import Location, SecurityFinding
from .traversal import Handler, NodeKind, Visitor, walk
from .treesitter.profiles import TYPESCRIPT, LanguageProfile
from .utils import member_name, node_text

SECRET_NAME_RE = re.compile(r"password|secret|api[_-]?key|auth[_-]?token|credentials", re.IGNORECASE)
UNTRUSTED_INPUT_RE = re.compile(r"\b(?:req|request)\.(?:body|query|params)\b")
WEAK_ALGORITHMS = ("md5", "sha1", "des", "rc4", "blowfish")
_NAME_WORD_RE = re.compile(r"[A-Z]+[0-9]*(?![a-z])|[A-Z]?[a-z]+[0-9]*|[0-9]+")
QUERY_METHODS = {"query", "execute", "raw", "$queryRawUnsafe", "$executeRawUnsafe"}
HTML_SINKS = {"innerHTML", "outerHTML"}
CRYPTO_FACTORIES = {"createHash", "createHmac", "createCipher", "createCipheriv", "createDecipher", "createDecipheriv"}
GLOBAL_OBJECTS = {"window", "globalThis", "global"}

RECOMMENDATIONS = {
    "code_evaluation": "Avoid evaluating strings as code; use JSON.parse or an explicit dispatch table",
    "regex_injection": "Escape or validate user-controlled input before building a RegExp",
    "hardcoded_credential": "Load secrets from environment variables or a secret manager",
    "prototype_pollution": "Do not mutate shared prototypes; use Object.create(null) or a Map for dynamic keys",
    "global_mutation": "Avoid writing to global objects; pass state explicitly",
    "sql_injection": "Use parameterized queries or a query builder instead of string concatenation",
    "xss": "Sanitize HTML (e.g. DOMPurify) or render text content instead",
    "weak_crypto": "Use SHA-256 or stronger hashes and AES-GCM for encryption",
    "explicit_any": "Replace any with a precise type or unknown",
    "type_assertion": "Prefer type guards over assertions that bypass the type checker",
}

CWE_IDS = {
    "code_evaluation": "CWE-95",
    "regex_injection": "CWE-1333",
    "hardcoded_credential": "CWE-798",
    "prototype_pollution": "CWE-1321",
    "global_mutation": "CWE-471",
    "sql_injection": "CWE-89",
    "xss": "CWE-79",
    "weak_crypto": "CWE-326",
}


def _is_plain_literal(node: Optional[Node]) -> bool:
    if node is None:
        return False
    if node.type == "template_string":
        return not any(c.type == "template_substitution" for c in node.named_children)
    return node.type in ("string", "number", "regex", "true", "false")


def _is_secret_value(node: Optional[Node]) -> bool:
    """A non-empty string literal with no interpolation."""
    if node is None or node.type not in ("string", "template_string"):
        return False
    return _is_plain_literal(node) and node.end_byte - node.start_byte > 2


def is_weak_crypto_name(name: str) -> bool:
    """True when a camelCase or snake_case word of ``name`` names a weak algorithm."""
    return any(word.lower() in WEAK_ALGORITHMS for word in _NAME_WORD_RE.findall(name))


def _first_argument(node: Node) -> Optional[Node]:
    args = node.child_by_field_name("arguments")
    if args is None or not args.named_children:
        return None
    return args.named_children[0]


def _is_built_string(node: Node) -> bool:
    """String concatenation or an interpolated template."""
    if node.type == "binary_expression":
        op = node.child_by_field_name("operator")
        return op is not None and op.type == "+"
    if node.type == "template_string":
        return any(c.type == "template_substitution" for c in node.named_children)
    return False


class _SecurityVisitor(Visitor):
    name = "security"

    def __init__(self, source: bytes, file_id: str, profile: LanguageProfile) -> None:
        self.source = source
        self.file_id = file_id
        self.profile = profile
        self.findings: List[SecurityFinding] = []

    def enter_table(self) -> Dict[NodeKind, Handler]:
        table: Dict[NodeKind, Handler] = {
            NodeKind.CALL: self._call,
            NodeKind.NEW: self._new,
            NodeKind.VARIABLE_DECLARATOR: self._declarator,
            NodeKind.ASSIGNMENT: self._assignment,
            NodeKind.FIELD: self._field,
            NodeKind.PROPERTY: self._property,
        }
        if self.profile.jsx:
            table[NodeKind.JSX_ELEMENT] = self._jsx
        if self.profile.type_assertions:
            table[NodeKind.PREDEFINED_TYPE] = self._predefined_type
            table[NodeKind.TYPE_ASSERTION] = self._type_assertion
        return table

    def _add(self, kind: str, severity: str, node: Node, message: str) -> None:
        self.findings.append(SecurityFinding(
            kind=kind,
            severity=severity,
            location=Location(file=self.file_id, line=node.start_point[0] + 1, column=node.start_point[1]),
            message=message,
            recommendation=RECOMMENDATIONS[kind],
            cwe=CWE_IDS.get(kind),
        ))

    def _text(self, node: Optional[Node]) -> str:
        return node_text(self.source, node)

    def _call(self, node: Node) -> None:
        callee = node.child_by_field_name("function")
        if callee is None:
            return
        first = _first_argument(node)

        if callee.type == "identifier":
            name = self._text(callee)
            if name == "eval":
                self._add("code_evaluation", "critical", node, "Call to eval()")
            elif name == "RegExp" and first is not None and not _is_plain_literal(first):
                self._add("regex_injection", "high", node, "RegExp built from a non-literal pattern")
            elif is_weak_crypto_name(name):
                self._add("weak_crypto", "medium", node, f"Weak hash/cipher call {name}()")
            return

        if callee.type != "member_expression":
            return
        method = self._text(callee.child_by_field_name("property"))
        if method in QUERY_METHODS and first is not None and _is_built_string(first):
            if UNTRUSTED_INPUT_RE.search(self._text(first)):
                self._add("sql_injection", "critical", node, f"{method}() built from request input by string concatenation")
        elif method in CRYPTO_FACTORIES and first is not None and first.type == "string":
            algorithm = self._text(first).strip("\"'").lower()
            if any(algorithm.startswith(weak) for weak in WEAK_ALGORITHMS):
                self._add("weak_crypto", "medium", node, f"{method}() with weak algorithm '{algorithm}'")
        elif is_weak_crypto_name(method):
            self._add("weak_crypto", "medium", node, f"Weak hash/cipher call {self._text(callee)}()")

    def _new(self, node: Node) -> None:
        constructor = self._text(node.child_by_field_name("constructor"))
        first = _first_argument(node)
        if constructor == "Function":
            self._add("code_evaluation", "critical", node, "new Function() compiles a string as code")
        elif constructor == "RegExp" and first is not None and not _is_plain_literal(first):
            self._add("regex_injection", "high", node, "RegExp built from a non-literal pattern")

    def _declarator(self, node: Node) -> None:
        name = node.child_by_field_name("name")
        if name is None or name.type != "identifier":
            return
        value = node.child_by_field_name("value")
        self._check_secret(self._text(name), value, node)

    def _field(self, node: Node) -> None:
        name = member_name(node, self.source).strip("\"'#")
        if name:
            self._check_secret(name, node.child_by_field_name("value"), node)

    def _property(self, node: Node) -> None:
        key = node.child_by_field_name("key")
        if key is not None:
            self._check_secret(self._text(key).strip("\"'"), node.child_by_field_name("value"), node)

    def _check_secret(self, name: str, value: Optional[Node], node: Node) -> None:
        if not SECRET_NAME_RE.search(name) or not _is_secret_value(value):
            return
        self._add("hardcoded_credential", "critical", node, f"Hardcoded credential in {name}")

    def _assignment(self, node: Node) -> None:
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is None or left.type not in ("member_expression", "subscript_expression"):
            return
        target = self._text(left)
        obj = left.child_by_field_name("object")
        prop = self._text(left.child_by_field_name("property"))

        if ".prototype" in target or "__proto__" in target:
            self._add("prototype_pollution", "high", node, f"Assignment to {target}")
        elif obj is not None and obj.type == "identifier" and self._text(obj) in GLOBAL_OBJECTS:
            self._add("global_mutation", "high", node, f"Assignment to global {target}")

        if prop in HTML_SINKS and not _is_plain_literal(right):
            self._add("xss", "high", node, f"Dynamic value assigned to {prop}")
        if left.type == "member_expression":
            self._check_secret(prop, right, node)

    def _jsx(self, node: Node) -> None:
        for attribute in node.named_children:
            if attribute.type != "jsx_attribute" or not attribute.named_children:
                continue
            if self._text(attribute.named_children[0]) == "dangerouslySetInnerHTML":
                self._add("xss", "high", attribute, "dangerouslySetInnerHTML renders raw HTML")

    def _predefined_type(self, node: Node) -> None:
        if self._text(node) == "any":
            self._add("explicit_any", "low", node, "Explicit any disables type checking")

    def _type_assertion(self, node: Node) -> None:
        if node.children and node.children[-1].type == "const":
            return
        asserted = node.named_children[-1] if node.named_children else None
        self._add("type_assertion", "low", node, f"Type assertion to {self._text(asserted)}")


@dataclass
class SecurityScanner:
    def analyze(
        self,
        tree: Tree,
        text: str,
        file_id: str = "<memory>",
        profile: LanguageProfile = TYPESCRIPT,
        errors: Optional[List[str]] = None,
    ) -> List[SecurityFinding]:
        visitor = _SecurityVisitor(text.encode("utf-8"), file_id, profile)
        if walk(tree, [visitor]) and errors is not None:
            errors.append(visitor.name)
        return visitor.findings
