"""
External API usage tracking.

Recognizes OpenAI client construction and method calls, maps each call to
the REST endpoint it hits, pulls model / max_tokens / temperature out of an
options-object first argument and estimates cost from a fixed price table.
A separate pass over the raw file text flags coarse usage patterns; those
flags describe the file as a whole, not individual call sites.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from tree_sitter import Node, Tree

from .models import APIUsageRecord, APIUsageSummary, Location
from .traversal import Handler, NodeKind, Visitor, walk
from .utils import member_name, node_text, strip_quotes

PROVIDER = "openai"
CLIENT_ENDPOINT = "client"  # construction, not a request

ENDPOINTS = {
    "createCompletion": "completions",
    "createChatCompletion": "chat/completions",
    "createEdit": "edits",
    "createImage": "images/generations",
    "createEmbedding": "embeddings",
    "createModeration": "moderations",
    "createFineTune": "fine-tunes",
    "listModels": "models",
    # v4 SDK resource paths
    "chat.completions.create": "chat/completions",
    "completions.create": "completions",
    "embeddings.create": "embeddings",
    "images.generate": "images/generations",
    "moderations.create": "moderations",
    "models.list": "models",
}

PRICE_PER_1K_TOKENS = {
    "gpt-4": 0.03,
    "gpt-4-32k": 0.06,
    "gpt-3.5-turbo": 0.002,
    "gpt-3.5-turbo-16k": 0.004,
    "text-davinci-003": 0.02,
    "text-embedding-ada-002": 0.0004,
}

TOKEN_MULTIPLIERS = {
    "gpt-4": 1.5,
    "gpt-4-32k": 1.5,
    "gpt-3.5-turbo": 1.2,
    "gpt-3.5-turbo-16k": 1.2,
}

USAGE_MARKERS = {
    "parallel": re.compile(r"Promise\.(?:all|race)\b"),
    "streaming": re.compile(r"\bstream\s*:\s*true\b"),
    "retry": re.compile(r"retry|backoff", re.IGNORECASE),
    "rate_limited": re.compile(r"rateLimit|throttle", re.IGNORECASE),
}

_OPTION_KEYS = {"model": "model", "max_tokens": "max_tokens", "maxTokens": "max_tokens", "temperature": "temperature"}


def estimated_tokens(model: Optional[str], max_tokens: Optional[int]) -> float:
    if not max_tokens:
        return 0.0
    return max_tokens * TOKEN_MULTIPLIERS.get(model or "", 1.0)


def estimate_cost(model: Optional[str], max_tokens: Optional[int]) -> float:
    return estimated_tokens(model, max_tokens) * PRICE_PER_1K_TOKENS.get(model or "", 0.0) / 1000


def detect_usage_patterns(text: str) -> Dict[str, bool]:
    return {name: bool(pattern.search(text)) for name, pattern in USAGE_MARKERS.items()}


def _is_client_construction(source: bytes, node: Optional[Node]) -> bool:
    if node is not None and node.type == "await_expression" and node.named_children:
        node = node.named_children[0]
    return (
        node is not None
        and node.type == "new_expression"
        and node_text(source, node.child_by_field_name("constructor")) == "OpenAI"
    )


class _ClientBindingVisitor(Visitor):
    """Collects the names a `new OpenAI(...)` client is bound to.

    Plain variables keep their identifier; class fields and `this.x`
    assignments are recorded as `this.x` so receivers inside methods match.
    """

    name = "api-usage-bindings"

    def __init__(self, source: bytes) -> None:
        self.source = source
        self.names: Set[str] = set()

    def enter_table(self) -> Dict[NodeKind, Handler]:
        return {
            NodeKind.VARIABLE_DECLARATOR: self._declarator,
            NodeKind.ASSIGNMENT: self._assignment,
            NodeKind.FIELD: self._field,
        }

    def _declarator(self, node: Node) -> None:
        name = node.child_by_field_name("name")
        if name is not None and name.type == "identifier" and _is_client_construction(self.source, node.child_by_field_name("value")):
            self.names.add(node_text(self.source, name))

    def _assignment(self, node: Node) -> None:
        left = node.child_by_field_name("left")
        if left is None or left.type not in ("identifier", "member_expression"):
            return
        if _is_client_construction(self.source, node.child_by_field_name("right")):
            self.names.add(node_text(self.source, left))

    def _field(self, node: Node) -> None:
        name = member_name(node, self.source)
        if name and _is_client_construction(self.source, node.child_by_field_name("value")):
            self.names.add(f"this.{name}")


class _ClientCallVisitor(Visitor):
    name = "api-usage"

    def __init__(self, source: bytes, file_id: str, client_names: Optional[Set[str]] = None) -> None:
        self.source = source
        self.file_id = file_id
        self.client_names = client_names or set()
        self.records: List[APIUsageRecord] = []

    def enter_table(self) -> Dict[NodeKind, Handler]:
        return {NodeKind.CALL: self._call, NodeKind.NEW: self._new}

    def _location(self, node: Node) -> Location:
        return Location(file=self.file_id, line=node.start_point[0] + 1, column=node.start_point[1])

    def _new(self, node: Node) -> None:
        if node_text(self.source, node.child_by_field_name("constructor")) == "OpenAI":
            self.records.append(APIUsageRecord(provider=PROVIDER, endpoint=CLIENT_ENDPOINT, location=self._location(node)))

    def _call(self, node: Node) -> None:
        callee = node.child_by_field_name("function")
        if callee is None or callee.type != "member_expression":
            return
        receiver = node_text(self.source, callee.child_by_field_name("object"))
        if not self._is_client(receiver):
            return
        method = node_text(self.source, callee.child_by_field_name("property"))
        endpoint = self._endpoint(receiver, method)

        record = APIUsageRecord(provider=PROVIDER, endpoint=endpoint, location=self._location(node))
        args = node.child_by_field_name("arguments")
        first = args.named_children[0] if args is not None and args.named_children else None
        if first is not None and first.type == "object":
            self._read_options(first, record)
        record.estimated_cost = estimate_cost(record.model, record.max_tokens)
        self.records.append(record)

    def _is_client(self, receiver: str) -> bool:
        if "openai" in receiver.lower():
            return True
        return any(receiver == name or receiver.startswith(name + ".") for name in self.client_names)

    @staticmethod
    def _endpoint(receiver: str, method: str) -> str:
        if method in ENDPOINTS:
            return ENDPOINTS[method]
        # openai.chat.completions.create -> chat.completions.create
        parts = receiver.split(".")[1:] + [method]
        for start in range(len(parts)):
            key = ".".join(parts[start:])
            if key in ENDPOINTS:
                return ENDPOINTS[key]
        return method

    def _read_options(self, obj: Node, record: APIUsageRecord) -> None:
        for pair in obj.named_children:
            if pair.type != "pair":
                continue
            key = strip_quotes(node_text(self.source, pair.child_by_field_name("key")))
            field_name = _OPTION_KEYS.get(key)
            value = pair.child_by_field_name("value")
            if field_name is None or value is None:
                continue
            raw = node_text(self.source, value)
            if field_name == "model" and value.type == "string":
                record.model = strip_quotes(raw)
            elif value.type == "number":
                try:
                    number = float(raw)
                except ValueError:
                    # hex, octal and separator literals
                    continue
                if field_name == "max_tokens":
                    record.max_tokens = int(number)
                elif field_name == "temperature":
                    record.temperature = number


@dataclass
class APIUsageTracker:
    def analyze(
        self,
        tree: Tree,
        text: str,
        file_id: str = "<memory>",
        errors: Optional[List[str]] = None,
    ) -> APIUsageSummary:
        source = text.encode("utf-8")
        bindings = _ClientBindingVisitor(source)
        if walk(tree, [bindings]) and errors is not None:
            errors.append(bindings.name)
        visitor = _ClientCallVisitor(source, file_id, bindings.names)
        if walk(tree, [visitor]) and errors is not None:
            errors.append(visitor.name)

        summary = APIUsageSummary(records=visitor.records, patterns=detect_usage_patterns(text))
        for record in visitor.records:
            if record.endpoint == CLIENT_ENDPOINT:
                continue
            summary.endpoint_counts[record.endpoint] = summary.endpoint_counts.get(record.endpoint, 0) + 1
            summary.total_calls += 1
            summary.total_estimated_cost += record.estimated_cost
        for record in visitor.records:
            record.frequency = summary.endpoint_counts.get(record.endpoint, 1)
        return summary
