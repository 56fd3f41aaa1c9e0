"""
Pytest configuration and shared fixtures for code-insight tests.
"""

import pytest
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional

from tree_sitter import Node, Tree

from code_insight.core.treesitter import parse_source
from code_insight.core.treesitter.profiles import TYPESCRIPT, LanguageProfile


def _iter_nodes(root: Node) -> Iterator[Node]:
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


@pytest.fixture
def parse() -> Callable[..., Tree]:
    """Parse TypeScript (or another profile's grammar) from a string."""
    def _parse(source: str, profile: LanguageProfile = TYPESCRIPT) -> Tree:
        return parse_source(source, profile.language_id)
    return _parse


@pytest.fixture
def find_node() -> Callable[[Tree, str], Optional[Node]]:
    """Return the first node of a given type in document order."""
    def _find(tree: Tree, node_type: str) -> Optional[Node]:
        return next((n for n in _iter_nodes(tree.root_node) if n.type == node_type), None)
    return _find


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[[Dict[str, str]], Path]:
    """Write a dict of relative path -> source into a temporary project root."""
    def _make(files: Dict[str, str]) -> Path:
        root = tmp_path / "project"
        for rel_path, source in files.items():
            target = root / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(source, encoding="utf-8")
        root.mkdir(exist_ok=True)
        return root
    return _make


def long_function_source(name: str, statements: int) -> str:
    body = "\n".join(f"  let v{i} = {i};" for i in range(statements))
    return f"export function {name}() {{\n{body}\n}}\n"


@pytest.fixture
def long_function() -> Callable[[str, int], str]:
    """Source of an exported function with exactly N top-level statements."""
    return long_function_source
