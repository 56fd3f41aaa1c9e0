"""
Project aggregator: runs the five analyzers per file and merges the results
into a project report.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from .api_usage import APIUsageTracker
from .class_hierarchy import ClassHierarchy
from .complexity import ComplexityEngine
from .config import AnalysisConfig, load_path_aliases
from .dependency_graph import DependencyGraphBuilder, read_dev_packages
from .models import (
    SEVERITY_ORDER,
    APIUsageSummary,
    ComplexityMetrics,
    DependencyGraph,
    FileAnalysisResult,
    Location,
    ProjectReport,
    Recommendation,
    RefactoringSuggestion,
)
from .patterns import PatternDetector
from .security import SecurityScanner
from .traversal import SourceUnit
from .treesitter import LanguageProfile, parse_source, profile_for_path
from .utils import discover_files


class AnalysisState(Enum):
    """Enum representing the current state of a project scan."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ProjectAggregator:
    """
    Orchestrates per-file analysis and project-level reporting.

    The per-file analyzers are stateless. The one piece of shared state is the
    dependency builder's running graph, and every merge into it goes through
    an asyncio.Lock so concurrent analyze_file() calls on one aggregator do not
    lose updates.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None, project_root: Optional[Path] = None):
        self.config = config or AnalysisConfig()
        root = project_root or (Path(self.config.project_root) if self.config.project_root else None)
        self.project_root = root.resolve() if root is not None else None

        aliases: Dict[str, List[str]] = {}
        dev_packages = set()
        if self.project_root is not None:
            aliases.update(load_path_aliases(self.project_root, self.config.tsconfig_path))
            dev_packages = read_dev_packages(self.project_root)
        aliases.update(self.config.path_aliases)
        logging.info(f"Initializing ProjectAggregator with root: {self.project_root}, aliases: {len(aliases)}")

        self.complexity = ComplexityEngine()
        self.dependencies = DependencyGraphBuilder(
            project_root=self.project_root,
            aliases=aliases,
            dev_packages=dev_packages,
        )
        self.patterns = PatternDetector(thresholds=self.config.thresholds)
        self.security = SecurityScanner()
        self.api_usage = APIUsageTracker()

        self.analysis_state = AnalysisState.NOT_STARTED
        self._merge_lock = asyncio.Lock()

    def file_id(self, path: Path) -> str:
        path = Path(path)
        if self.project_root is not None:
            try:
                return path.resolve().relative_to(self.project_root).as_posix()
            except ValueError:
                pass
        return path.as_posix()

    # --- per file ---

    async def analyze_file(self, path: Path) -> FileAnalysisResult:
        """Read, parse and analyze one file. Never raises for problems with the file itself."""
        path = Path(path)
        file_id = self.file_id(path)
        profile = profile_for_path(path)
        if profile is None:
            return self._neutral(file_id, None, f"Unsupported file type: {path.suffix}")
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logging.warning(f"Could not read {path}: {e}")
            return self._neutral(file_id, profile, f"Could not read file: {e}")
        return await self.analyze_source(text, file_id, profile)

    async def analyze_source(self, text: str, file_id: str, profile: LanguageProfile) -> FileAnalysisResult:
        start = time.perf_counter()
        unit = SourceUnit(path=file_id, text=text, profile=profile)
        try:
            unit.tree = await asyncio.to_thread(parse_source, text, profile.language_id)
        except Exception as e:
            logging.warning(f"Failed to parse {file_id}: {e}")
            return self._neutral(file_id, profile, f"Parse failed: {e}")
        tree = unit.tree
        if tree.root_node.has_error and not self.config.allow_partial_parse:
            logging.warning(f"Skipping {file_id}: source contains syntax errors")
            return self._neutral(file_id, profile, "Source contains syntax errors")

        errors: List[str] = []
        complexity, edges, pattern_results, security, api_usage = await asyncio.gather(
            self._run("complexity", file_id, errors, ComplexityMetrics,
                      self.complexity.analyze, tree, text, errors),
            self._run("dependencies", file_id, errors, list,
                      self.dependencies.analyze, tree, file_id, text, errors),
            self._run("patterns", file_id, errors, lambda: ([], []),
                      self.patterns.analyze, tree, text, file_id, profile, errors),
            self._run("security", file_id, errors, list,
                      self.security.analyze, tree, text, file_id, profile, errors),
            self._run("api_usage", file_id, errors, APIUsageSummary,
                      self.api_usage.analyze, tree, text, file_id, errors),
        )
        unit.tree = tree = None

        async with self._merge_lock:
            self.dependencies.merge(file_id, edges)

        patterns, anti_patterns = pattern_results
        result = FileAnalysisResult(
            path=file_id,
            language_id=profile.language_id,
            complexity=complexity,
            dependencies=edges,
            patterns=patterns,
            anti_patterns=anti_patterns,
            security=security,
            api_usage=api_usage,
            analyzer_errors=sorted(set(errors)),
        )
        result.suggestions = self.derive_suggestions(result)
        result.duration_seconds = time.perf_counter() - start
        logging.debug(f"Analyzed {file_id} in {result.duration_seconds:.3f}s")
        return result

    async def _run(self, name: str, file_id: str, errors: List[str], default: Callable[[], Any], fn, *args) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception as e:
            logging.error(f"Analyzer {name} failed on {file_id}: {e}", exc_info=True)
            errors.append(name)
            return default()

    @staticmethod
    def _neutral(file_id: str, profile: Optional[LanguageProfile], reason: str) -> FileAnalysisResult:
        return FileAnalysisResult(
            path=file_id,
            language_id=profile.language_id if profile is not None else "",
            parse_error=reason,
        )

    def derive_suggestions(self, result: FileAnalysisResult) -> List[RefactoringSuggestion]:
        thresholds = self.config.thresholds
        suggestions: List[RefactoringSuggestion] = []
        for finding in result.anti_patterns:
            suggestions.append(RefactoringSuggestion(
                kind=finding.kind,
                priority="high",
                location=finding.location,
                message=f"{finding.message}. {finding.suggestion}",
            ))
        for finding in result.security:
            if finding.severity in ("critical", "high"):
                suggestions.append(RefactoringSuggestion(
                    kind=f"security:{finding.kind}",
                    priority="high",
                    location=finding.location,
                    message=f"{finding.message}. {finding.recommendation}",
                ))

        metrics = result.complexity
        file_location = Location(file=result.path, line=1)
        if metrics.cyclomatic_complexity > thresholds.max_file_complexity:
            suggestions.append(RefactoringSuggestion(
                kind="complexity",
                priority="medium",
                location=file_location,
                message=f"File cyclomatic complexity {metrics.cyclomatic_complexity} exceeds {thresholds.max_file_complexity}",
            ))
        if metrics.maintainability_index < thresholds.min_maintainability:
            suggestions.append(RefactoringSuggestion(
                kind="maintainability",
                priority="medium",
                location=file_location,
                message=f"Maintainability index {metrics.maintainability_index:.1f} is below {thresholds.min_maintainability}",
            ))
        for fn in metrics.per_function:
            location = Location(file=result.path, line=fn.line)
            if fn.cyclomatic_complexity > thresholds.max_function_complexity:
                suggestions.append(RefactoringSuggestion(
                    kind="function_complexity",
                    priority="high",
                    location=location,
                    message=f"{fn.name} has cyclomatic complexity {fn.cyclomatic_complexity}; break it into smaller functions",
                ))
            if fn.max_nesting_depth > thresholds.max_nesting_depth:
                suggestions.append(RefactoringSuggestion(
                    kind="nesting",
                    priority="medium",
                    location=location,
                    message=f"{fn.name} nests {fn.max_nesting_depth} levels deep; use early returns or extract helpers",
                ))
        for cls in metrics.per_class:
            if cls.lack_of_cohesion > thresholds.max_lcom:
                suggestions.append(RefactoringSuggestion(
                    kind="cohesion",
                    priority="low",
                    location=Location(file=result.path, line=cls.line),
                    message=f"{cls.name} has low cohesion (LCOM {cls.lack_of_cohesion:.2f}); consider splitting it",
                ))
        return suggestions

    # --- project ---

    async def analyze_project(
        self,
        paths: Optional[Iterable[Path]] = None,
        on_file_done: Optional[Callable[[FileAnalysisResult], None]] = None,
    ) -> List[FileAnalysisResult]:
        """
        Analyze many files concurrently.

        Starts a new scan: the running dependency graph is cleared first. When
        no paths are given, files are discovered under the project root.
        """
        self.dependencies.reset()
        if paths is None:
            root = self.project_root or self.config.require_project_root()
            paths = discover_files(root, self.config.extensions, self.config.ignored_patterns)
        paths = [Path(p) for p in paths]
        self.dependencies.known_files = {self.file_id(p) for p in paths}

        self.analysis_state = AnalysisState.IN_PROGRESS
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

        async def worker(path: Path) -> FileAnalysisResult:
            async with semaphore:
                result = await self._analyze_with_timeout(path)
            if on_file_done is not None:
                on_file_done(result)
            return result

        logging.info(f"Analyzing {len(paths)} files (concurrency {self.config.max_concurrency})")
        try:
            results = await asyncio.gather(*(worker(p) for p in paths))
        except Exception as e:
            self.analysis_state = AnalysisState.FAILED
            logging.error(f"Project analysis failed: {e}", exc_info=True)
            raise
        self.analysis_state = AnalysisState.COMPLETED
        return list(results)

    async def _analyze_with_timeout(self, path: Path) -> FileAnalysisResult:
        timeout = self.config.file_timeout_seconds
        if not timeout:
            return await self.analyze_file(path)
        try:
            return await asyncio.wait_for(self.analyze_file(path), timeout=timeout)
        except asyncio.TimeoutError:
            # the worker thread keeps running; its result is discarded
            logging.warning(f"Analysis of {path} timed out after {timeout}s")
            return self._neutral(self.file_id(path), profile_for_path(path), f"Timed out after {timeout}s")

    def dependency_graph(self) -> DependencyGraph:
        return self.dependencies.snapshot(self.config.entry_points)

    def generate_report(self, results: List[FileAnalysisResult]) -> ProjectReport:
        for result in results:
            self.dependencies.merge(result.path, result.dependencies)
        graph = self.dependency_graph()

        hierarchy = ClassHierarchy.from_metrics(
            cls for result in results for cls in result.complexity.per_class
        )
        for result in results:
            for cls in result.complexity.per_class:
                cls.inheritance_depth = hierarchy.depth(cls.name)

        summary = self._summarize(results, graph)
        recommendations = self._recommend(results, summary, graph)
        logging.info(
            f"Report: files={len(results)} recommendations={len(recommendations)} "
            f"cycles={len(graph.circular_chains)}"
        )
        return ProjectReport(
            summary=summary,
            recommendations=recommendations,
            dependency_graph=graph,
            files=results,
        )

    def _summarize(self, results: List[FileAnalysisResult], graph: DependencyGraph) -> Dict[str, Any]:
        analyzed = [r for r in results if r.parse_error is None]
        count = max(len(analyzed), 1)
        severities = Counter(f.severity for r in results for f in r.security)
        pattern_kinds = Counter(p.kind for r in results for p in r.patterns)
        anti_pattern_kinds = Counter(a.kind for r in results for a in r.anti_patterns)
        return {
            "total_files": len(results),
            "analyzed_files": len(analyzed),
            "failed_files": len(results) - len(analyzed),
            "total_lines": sum(r.complexity.line_metrics.total for r in analyzed),
            "code_lines": sum(r.complexity.line_metrics.code for r in analyzed),
            "comment_lines": sum(r.complexity.line_metrics.comment for r in analyzed),
            "total_functions": sum(len(r.complexity.per_function) for r in analyzed),
            "total_classes": sum(len(r.complexity.per_class) for r in analyzed),
            "average_cyclomatic_complexity": sum(r.complexity.cyclomatic_complexity for r in analyzed) / count,
            "average_cognitive_complexity": sum(r.complexity.cognitive_complexity for r in analyzed) / count,
            "average_maintainability_index": sum(r.complexity.maintainability_index for r in analyzed) / count,
            "total_patterns": sum(pattern_kinds.values()),
            "patterns_by_kind": dict(pattern_kinds),
            "total_anti_patterns": sum(anti_pattern_kinds.values()),
            "anti_patterns_by_kind": dict(anti_pattern_kinds),
            "security_findings": {level: severities.get(level, 0) for level in SEVERITY_ORDER},
            "total_api_calls": sum(r.api_usage.total_calls for r in results),
            "total_estimated_api_cost": sum(r.api_usage.total_estimated_cost for r in results),
            "total_suggestions": sum(len(r.suggestions) for r in results),
            "circular_dependencies": len(graph.circular_chains),
            "orphaned_files": len(graph.orphaned_files),
        }

    def _recommend(self, results: List[FileAnalysisResult], summary: Dict[str, Any], graph: DependencyGraph) -> List[Recommendation]:
        thresholds = self.config.thresholds
        recommendations: List[Recommendation] = []

        critical = summary["security_findings"]["critical"]
        high = summary["security_findings"]["high"]
        if critical:
            recommendations.append(Recommendation(
                category="security",
                priority="critical",
                message=f"Fix {critical} critical security findings before release",
            ))
        elif high:
            recommendations.append(Recommendation(
                category="security",
                priority="high",
                message=f"Review {high} high-severity security findings",
            ))

        if graph.circular_chains:
            recommendations.append(Recommendation(
                category="circular_dependencies",
                priority="high",
                message=f"Restructure modules to break {len(graph.circular_chains)} circular dependency chains",
            ))

        complex_files = [
            r.path for r in results
            if r.parse_error is None and (
                r.complexity.cyclomatic_complexity > thresholds.max_file_complexity
                or r.complexity.maintainability_index < thresholds.min_maintainability
            )
        ]
        if complex_files:
            recommendations.append(Recommendation(
                category="complexity",
                priority="high",
                message=f"Reduce complexity in {len(complex_files)} files: {', '.join(complex_files[:5])}",
            ))

        anti_patterns = dict(summary["anti_patterns_by_kind"])
        long_methods = anti_patterns.pop("long_method", 0)
        if long_methods:
            recommendations.append(Recommendation(
                category="long_method",
                priority="medium",
                message=f"Split {long_methods} long methods into smaller functions",
            ))
        if anti_patterns:
            listed = ", ".join(f"{kind} x{n}" for kind, n in sorted(anti_patterns.items()))
            recommendations.append(Recommendation(
                category="anti_patterns",
                priority="medium",
                message=f"Address design anti-patterns: {listed}",
            ))

        if summary["total_api_calls"] > thresholds.api_call_threshold:
            recommendations.append(Recommendation(
                category="api_usage",
                priority="medium",
                message=f"{summary['total_api_calls']} external API calls found; add response caching and rate limiting",
            ))

        if summary["total_patterns"] > thresholds.pattern_documentation_threshold:
            recommendations.append(Recommendation(
                category="patterns",
                priority="low",
                message=f"Document the {summary['total_patterns']} design patterns in use for new contributors",
            ))

        recommendations.sort(key=lambda r: SEVERITY_ORDER.get(r.priority, len(SEVERITY_ORDER)))
        return recommendations
