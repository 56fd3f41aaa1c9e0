"""Cross-file dependency graph: edge extraction, resolution and topology."""

from __future__ import annotations

import fnmatch
import json
import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from tree_sitter import Node, Tree

from .models import DependencyEdge, DependencyGraph, GraphNode
from .traversal import Handler, NodeKind, Visitor, is_import_like, walk
from .utils import node_text, strip_quotes

RESOLVE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".mts", ".cts")


def package_name(specifier: str) -> str:
    """Package a bare specifier belongs to: 'lodash/fp' -> 'lodash', '@a/b/c' -> '@a/b'."""
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) > 1:
        return "/".join(parts[:2])
    return parts[0]


def read_dev_packages(project_root: Path) -> Set[str]:
    """Names under devDependencies in the project's package.json."""
    path = Path(project_root) / "package.json"
    if not path.is_file():
        return set()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logging.warning(f"Could not read devDependencies from {path}: {e}")
        return set()
    dev = data.get("devDependencies") if isinstance(data, dict) else None
    return set(dev) if isinstance(dev, dict) else set()


class _ImportVisitor(Visitor):
    name = "dependencies"

    def __init__(self, source: bytes) -> None:
        self.source = source
        self.found: List[Tuple[str, str]] = []  # (specifier, kind)

    def enter_table(self) -> Dict[NodeKind, Handler]:
        return {
            NodeKind.IMPORT: self._import,
            NodeKind.EXPORT: self._export,
            NodeKind.CALL: self._call,
        }

    def _string(self, node: Optional[Node]) -> Optional[str]:
        if node is None or node.type not in ("string", "template_string"):
            return None
        if any(c.type == "template_substitution" for c in node.named_children):
            return None
        return strip_quotes(node_text(self.source, node))

    def _import(self, node: Node) -> None:
        source = node.child_by_field_name("source")
        if source is None:
            # import fs = require("fs")
            clause = next((c for c in node.named_children if c.type == "import_require_clause"), None)
            source = clause.child_by_field_name("source") if clause is not None else None
        specifier = self._string(source)
        if specifier:
            self.found.append((specifier, "static"))

    def _export(self, node: Node) -> None:
        specifier = self._string(node.child_by_field_name("source"))
        if specifier:
            self.found.append((specifier, "static"))

    def _call(self, node: Node) -> None:
        if not is_import_like(node):
            return
        args = node.child_by_field_name("arguments")
        first = args.named_children[0] if args is not None and args.named_children else None
        specifier = self._string(first)
        if specifier:
            self.found.append((specifier, "dynamic"))


def find_cycles(adjacency: Dict[str, List[str]]) -> List[List[str]]:
    """
    Depth-first search with an explicit recursion stack.

    A back edge into the stack yields the stack slice from the revisited node
    through the current node. Nodes finished and popped are never revisited,
    and each cycle is reported once regardless of the node it was entered from.
    """
    cycles: List[List[str]] = []
    seen_cycles: Set[Tuple[str, ...]] = set()
    visited: Set[str] = set()
    on_stack: Dict[str, int] = {}
    path: List[str] = []

    for start in adjacency:
        if start in visited:
            continue
        visited.add(start)
        on_stack[start] = 0
        path.append(start)
        frames = [iter(adjacency.get(start, []))]
        while frames:
            neighbor = next(frames[-1], None)
            if neighbor is None:
                frames.pop()
                del on_stack[path.pop()]
                continue
            if neighbor in on_stack:
                cycle = path[on_stack[neighbor]:]
                pivot = cycle.index(min(cycle))
                key = tuple(cycle[pivot:] + cycle[:pivot])
                if key not in seen_cycles:
                    seen_cycles.add(key)
                    cycles.append(list(cycle))
            elif neighbor not in visited:
                visited.add(neighbor)
                on_stack[neighbor] = len(path)
                path.append(neighbor)
                frames.append(iter(adjacency.get(neighbor, [])))
    return cycles


def strongly_connected_components(adjacency: Dict[str, List[str]]) -> List[List[str]]:
    """Kosaraju's algorithm; components with a single node are dropped."""
    order: List[str] = []
    visited: Set[str] = set()
    for start in adjacency:
        if start in visited:
            continue
        visited.add(start)
        frames = [(start, iter(adjacency.get(start, [])))]
        while frames:
            node, neighbors = frames[-1]
            neighbor = next(neighbors, None)
            if neighbor is None:
                frames.pop()
                order.append(node)
            elif neighbor not in visited:
                visited.add(neighbor)
                frames.append((neighbor, iter(adjacency.get(neighbor, []))))

    reverse: Dict[str, List[str]] = {node: [] for node in adjacency}
    for source, targets in adjacency.items():
        for target in targets:
            reverse.setdefault(target, []).append(source)

    components: List[List[str]] = []
    assigned: Set[str] = set()
    for start in reversed(order):
        if start in assigned:
            continue
        assigned.add(start)
        component = []
        pending = [start]
        while pending:
            node = pending.pop()
            component.append(node)
            for neighbor in reverse.get(node, []):
                if neighbor not in assigned:
                    assigned.add(neighbor)
                    pending.append(neighbor)
        if len(component) > 1:
            components.append(component)
    return components


@dataclass
class DependencyGraphBuilder:
    """
    Extracts import edges per file and keeps the running project graph.

    analyze() is read-only and safe to call from several threads. merge()
    mutates the running graph and is not synchronized: callers analyzing
    files concurrently must let one writer merge at a time.
    """
    project_root: Optional[Path] = None
    aliases: Dict[str, List[str]] = field(default_factory=dict)
    known_files: Set[str] = field(default_factory=set)
    dev_packages: Set[str] = field(default_factory=set)
    _nodes: Dict[str, GraphNode] = field(default_factory=dict, repr=False)
    _edges_by_file: Dict[str, List[DependencyEdge]] = field(default_factory=dict, repr=False)

    def analyze(self, tree: Tree, file_id: str, text: str, errors: Optional[List[str]] = None) -> List[DependencyEdge]:
        visitor = _ImportVisitor(text.encode("utf-8"))
        if walk(tree, [visitor]) and errors is not None:
            errors.append(visitor.name)

        edges: List[DependencyEdge] = []
        for specifier, kind in visitor.found:
            target, external = self.resolve(specifier, file_id)
            edges.append(DependencyEdge(source=file_id, target=target, kind=kind, specifier=specifier, external=external))
        return edges

    # --- resolution ---

    def resolve(self, specifier: str, file_id: str) -> Tuple[str, bool]:
        """Map an import specifier to (node id, is_external)."""
        aliased = self._resolve_alias(specifier)
        if aliased is not None:
            return aliased, False
        if specifier.startswith(("./", "../")) or specifier in (".", ".."):
            joined = posixpath.normpath(posixpath.join(posixpath.dirname(file_id), specifier))
            return self._match_file(joined), False
        if specifier.startswith("/"):
            return self._match_file(posixpath.normpath(specifier.lstrip("/"))), False
        return package_name(specifier), True

    def _best_alias(self, specifier: str) -> Optional[Tuple[str, str]]:
        """Pick the alias pattern TypeScript would use: exact, then longest prefix."""
        best: Optional[Tuple[str, str]] = None
        for pattern, replacements in self.aliases.items():
            if not replacements:
                continue
            if pattern == specifier:
                return pattern, ""
            if not pattern.endswith("*") or not specifier.startswith(pattern[:-1]):
                continue
            if best is None or len(pattern) > len(best[0]):
                best = pattern, specifier[len(pattern) - 1:]
        return best

    def _resolve_alias(self, specifier: str) -> Optional[str]:
        match = self._best_alias(specifier)
        if match is None:
            return None
        pattern, rest = match
        candidates = [
            posixpath.normpath(r[:-1] + rest if r.endswith("*") else r)
            for r in self.aliases[pattern]
        ]
        for candidate in candidates:
            matched = self._match_existing(candidate)
            if matched is not None:
                return matched
        return candidates[0]

    def _match_file(self, path: str) -> str:
        return self._match_existing(path) or path

    def _match_existing(self, path: str) -> Optional[str]:
        stem, suffix = posixpath.splitext(path)
        candidates = [path]
        if suffix in (".js", ".jsx", ".mjs", ".cjs"):
            # ESM-style TypeScript imports name the emitted .js file
            candidates.extend(stem + ext for ext in (".ts", ".tsx", ".mts", ".cts"))
        candidates.extend(path + ext for ext in RESOLVE_EXTENSIONS)
        candidates.extend(posixpath.join(path, "index" + ext) for ext in RESOLVE_EXTENSIONS)
        for candidate in candidates:
            if self._exists(candidate):
                return candidate
        return None

    def _exists(self, file_id: str) -> bool:
        if file_id in self.known_files:
            return True
        if self.project_root is None or self.known_files:
            return False
        return (Path(self.project_root) / file_id).is_file()

    # --- running graph ---

    def reset(self) -> None:
        self._nodes.clear()
        self._edges_by_file.clear()

    def _node(self, node_id: str, external: bool = False) -> GraphNode:
        node = self._nodes.get(node_id)
        if node is None:
            node = GraphNode(id=node_id, external=external, dev=external and node_id in self.dev_packages)
            self._nodes[node_id] = node
        return node

    def merge(self, file_id: str, edges: Iterable[DependencyEdge]) -> None:
        """Record one file's edges, replacing any earlier merge of the same file."""
        self._node(file_id)
        merged = []
        for edge in edges:
            self._node(edge.source)
            self._node(edge.target, external=edge.external)
            merged.append(edge)
        self._edges_by_file[file_id] = merged

    def adjacency(self, include_external: bool = False) -> Dict[str, List[str]]:
        adjacency: Dict[str, List[str]] = {
            node_id: [] for node_id, node in self._nodes.items() if include_external or not node.external
        }
        for edges in self._edges_by_file.values():
            for edge in edges:
                if edge.external and not include_external:
                    continue
                targets = adjacency.setdefault(edge.source, [])
                if edge.target not in targets:
                    targets.append(edge.target)
        return adjacency

    def snapshot(self, entry_points: Iterable[str] = ()) -> DependencyGraph:
        """Build a DependencyGraph of everything merged so far."""
        adjacency = self.adjacency()
        cycles = find_cycles(adjacency)
        components = strongly_connected_components(adjacency)
        component_of = {node: i for i, comp in enumerate(components) for node in comp}
        cycle_members = {node for cycle in cycles for node in cycle}

        edges: List[DependencyEdge] = []
        targets: Set[str] = set()
        for file_edges in self._edges_by_file.values():
            for edge in file_edges:
                targets.add(edge.target)
                source_comp = component_of.get(edge.source)
                circular = (source_comp is not None and source_comp == component_of.get(edge.target)) or (
                    not edge.external and edge.source == edge.target
                )
                edges.append(DependencyEdge(
                    source=edge.source,
                    target=edge.target,
                    kind=edge.kind,
                    specifier=edge.specifier,
                    external=edge.external,
                    circular=circular,
                ))

        entry_patterns = list(entry_points)
        orphans = [
            node_id for node_id, node in self._nodes.items()
            if not node.external
            and node_id not in targets
            and not any(fnmatch.fnmatch(node_id, p) for p in entry_patterns)
        ]
        orphan_set = set(orphans)
        nodes = {
            node_id: GraphNode(
                id=node_id,
                external=node.external,
                dev=node.dev,
                orphaned=node_id in orphan_set,
                in_cycle=node_id in component_of or node_id in cycle_members,
            )
            for node_id, node in self._nodes.items()
        }

        internal = [n for n in nodes.values() if not n.external]
        out_degree = [len(adjacency_targets) for adjacency_targets in self.adjacency(include_external=True).values()]
        metrics = {
            "total_dependencies": len(edges),
            "average_dependencies_per_module": len(edges) / max(len(internal), 1),
            "max_dependencies": max(out_degree, default=0),
        }
        logging.info(
            f"Dependency graph: nodes={len(nodes)} edges={len(edges)} "
            f"cycles={len(cycles)} components={len(components)}"
        )
        return DependencyGraph(
            nodes=nodes,
            edges=edges,
            circular_chains=cycles,
            strongly_connected_components=components,
            orphaned_files=orphans,
            metrics=metrics,
        )
