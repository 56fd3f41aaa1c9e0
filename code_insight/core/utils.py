"""
Shared utility functions for source analysis.

This module contains pure helpers used by the analyzers: reading text out of
tree-sitter nodes, and discovering source files while honouring ignore
patterns and .gitignore files.
"""

import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from tree_sitter import Node


# --- Tree-sitter node helpers ---

def node_text(source: bytes, node: Optional[Node]) -> str:
    """
    Return the source text spanned by a node.

    Args:
        source: UTF-8 encoded source the tree was parsed from
        node: Node to slice, may be None

    Returns:
        Decoded text, empty string for a missing node
    """
    if node is None:
        return ""
    return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] in "\"'`" and text[-1] == text[0]:
        return text[1:-1]
    return text


def line_span(node: Node) -> Tuple[int, int]:
    return node.start_point[0] + 1, node.end_point[0] + 1


def named_children_of_type(node: Optional[Node], *types: str) -> List[Node]:
    if node is None:
        return []
    return [child for child in node.named_children if child.type in types]


# --- File discovery ---

def read_gitignore(root: Path) -> List[str]:
    """Patterns from the project's top-level .gitignore, minus comments and negations."""
    gitignore_path = root / ".gitignore"
    if not gitignore_path.is_file():
        return []
    with open(gitignore_path, "r", encoding="utf-8") as f:
        lines = [line.strip() for line in f]
    return [line for line in lines if line and not line.startswith(("#", "!"))]


def is_ignored(rel_path: str, pattern: str) -> bool:
    """
    Match a root-relative POSIX path against one gitignore-style pattern.

    A leading slash anchors the pattern at the root, a trailing slash matches
    directories only, and a bare name matches any path segment.
    """
    pattern = pattern.strip().replace("\\", "/")
    if pattern.startswith("./"):
        pattern = pattern[2:]
    anchored = pattern.startswith("/")
    directory_only = pattern.endswith("/")
    pattern = pattern.strip("/")
    if not pattern:
        return False
    parts = rel_path.split("/")

    if directory_only:
        if anchored or "/" in pattern:
            return rel_path.startswith(pattern + "/")
        return any(fnmatch.fnmatch(part, pattern) for part in parts[:-1])
    if anchored or "/" in pattern:
        return fnmatch.fnmatch(rel_path, pattern) or rel_path.startswith(pattern + "/")
    return any(fnmatch.fnmatch(part, pattern) for part in parts)


def discover_files(
    directory: Path,
    extensions: Iterable[str],
    ignored_patterns: Iterable[str] = (),
) -> List[Path]:
    """
    Recursively collect source files under a directory.

    Dot-directories and node_modules are always skipped; configured ignore
    patterns and .gitignore rules are applied to everything else.

    Args:
        directory: Root directory of the project
        extensions: File suffixes to include, e.g. ['.ts', '.tsx']
        ignored_patterns: Extra gitignore-style patterns relative to the root

    Returns:
        Sorted list of resolved file paths
    """
    root = directory.resolve()
    suffixes = {ext.lower() for ext in extensions}
    patterns = list(ignored_patterns) + read_gitignore(root)

    found: List[Path] = []
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and d != "node_modules")
        for filename in sorted(filenames):
            file_path = Path(current) / filename
            if file_path.suffix.lower() not in suffixes:
                continue
            rel_path = file_path.relative_to(root).as_posix()
            if any(is_ignored(rel_path, pattern) for pattern in patterns):
                continue
            found.append(file_path)

    logging.info(f"Found {len(found)} source files to analyze (after filtering ignore patterns).")
    return found


# --- Function shape helpers ---

def function_body(node: Node) -> Optional[Node]:
    return node.child_by_field_name("body")


def parameter_count(node: Node) -> int:
    params = node.child_by_field_name("parameters")
    if params is None:
        # single bare arrow parameter: x => x * 2
        return 1 if node.child_by_field_name("parameter") is not None else 0
    return sum(1 for child in params.named_children if child.type != "comment")


def statement_count(body: Optional[Node]) -> int:
    """Count the statements directly inside a function or method body."""
    if body is None:
        return 0
    if body.type != "statement_block":
        # expression-bodied arrow function
        return 1
    return sum(1 for child in body.named_children if child.type != "comment")


# --- Class shape helpers ---

METHOD_MEMBER_TYPES = ("method_definition", "abstract_method_signature", "method_signature")
PROPERTY_MEMBER_TYPES = ("public_field_definition", "field_definition")


def class_name(node: Node, source: bytes) -> str:
    return node_text(source, node.child_by_field_name("name")) or "<anonymous>"


def class_members(node: Node) -> List[Node]:
    body = node.child_by_field_name("body")
    if body is None:
        return []
    return [child for child in body.named_children if child.type not in ("comment", "decorator")]


def member_name(member: Node, source: bytes) -> str:
    return node_text(source, member.child_by_field_name("name") or member.child_by_field_name("property"))


def superclass_name(node: Node, source: bytes) -> Optional[str]:
    """Name of the class a class declaration extends, if any."""
    heritage = next((c for c in node.named_children if c.type == "class_heritage"), None)
    if heritage is None:
        return None
    extends = next((c for c in heritage.named_children if c.type == "extends_clause"), None)
    if extends is not None:
        value = extends.child_by_field_name("value")
        if value is None and extends.named_children:
            value = extends.named_children[0]
        return node_text(source, value) or None
    # JavaScript grammar: class_heritage holds the expression directly
    if heritage.named_children and heritage.named_children[0].type != "implements_clause":
        return node_text(source, heritage.named_children[0]) or None
    return None
