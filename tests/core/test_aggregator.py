from __future__ import annotations

import asyncio
import json

import pytest

from code_insight.core.aggregator import AnalysisState, ProjectAggregator
from code_insight.core.config import AnalysisConfig
from code_insight.core.treesitter.profiles import TYPESCRIPT


def _aggregator(root, **overrides) -> ProjectAggregator:
    return ProjectAggregator(config=AnalysisConfig(project_root=str(root), **overrides))


def _categories(report):
    return [r.category for r in report.recommendations]


class TestProjectAnalysis:
    """End-to-end scans over small temporary projects."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("statements, expect_long_method", [(25, False), (35, True)])
    async def test_long_method_recommendation(self, make_project, long_function, statements, expect_long_method):
        root = make_project({
            "main.ts": 'import { work } from "./work";\nwork();\n',
            "work.ts": long_function("work", statements),
        })
        aggregator = _aggregator(root)

        results = await aggregator.analyze_project()
        report = aggregator.generate_report(results)

        assert ("long_method" in _categories(report)) is expect_long_method
        assert "circular_dependencies" not in _categories(report)
        assert report.summary["total_files"] == 2
        assert report.dependency_graph.circular_chains == []
        assert aggregator.analysis_state is AnalysisState.COMPLETED

    @pytest.mark.asyncio
    async def test_circular_imports_are_reported(self, make_project):
        root = make_project({
            "a.ts": 'import { b } from "./b";\nexport const a = 1;\n',
            "b.ts": 'import { c } from "./c";\nexport const b = 2;\n',
            "c.ts": 'import { a } from "./a";\nexport const c = 3;\n',
        })
        aggregator = _aggregator(root)

        report = aggregator.generate_report(await aggregator.analyze_project())

        assert len(report.dependency_graph.circular_chains) == 1
        assert "circular_dependencies" in _categories(report)
        assert report.summary["circular_dependencies"] == 1

    @pytest.mark.asyncio
    async def test_unparsable_file_yields_neutral_result(self, make_project):
        root = make_project({
            "good.ts": "export const ok = 1;\n",
            "broken.ts": "function (\n",
        })
        aggregator = _aggregator(root)

        results = {r.path: r for r in await aggregator.analyze_project()}
        report = aggregator.generate_report(list(results.values()))

        broken = results["broken.ts"]
        assert broken.parse_error
        assert broken.complexity.cyclomatic_complexity == 1
        assert broken.security == [] and broken.dependencies == []
        assert results["good.ts"].parse_error is None
        assert report.summary["failed_files"] == 1
        assert report.summary["analyzed_files"] == 1

    @pytest.mark.asyncio
    async def test_partial_parse_can_be_allowed(self, make_project):
        root = make_project({"broken.ts": "const apiKey = \"sk-live-123\";\nfunction (\n"})
        aggregator = _aggregator(root, allow_partial_parse=True)

        result = (await aggregator.analyze_project())[0]

        assert result.parse_error is None

    @pytest.mark.asyncio
    async def test_rescan_resets_the_graph(self, make_project):
        root = make_project({
            "a.ts": 'import { b } from "./b";\n',
            "b.ts": "export const b = 1;\n",
        })
        aggregator = _aggregator(root)

        await aggregator.analyze_project()
        results = await aggregator.analyze_project()
        report = aggregator.generate_report(results)

        assert report.dependency_graph.metrics["total_dependencies"] == 1
        assert report.dependency_graph.orphaned_files == ["a.ts"]

    @pytest.mark.asyncio
    async def test_inheritance_depth_spans_files(self, make_project):
        root = make_project({
            "base.ts": "export class Base {}\n",
            "child.ts": 'import { Base } from "./base";\nexport class Child extends Base {}\n',
            "leaf.ts": 'import { Child } from "./child";\nexport class Leaf extends Child {}\n',
        })
        aggregator = _aggregator(root)

        report = aggregator.generate_report(await aggregator.analyze_project())
        depths = {c.name: c.inheritance_depth for f in report.files for c in f.complexity.per_class}

        assert depths == {"Base": 0, "Child": 1, "Leaf": 2}

    @pytest.mark.asyncio
    async def test_report_is_json_serializable(self, make_project):
        root = make_project({
            "api.ts": 'const password = "hunter22";\nconst openai = new OpenAI();\nopenai.createCompletion({ model: "gpt-4", max_tokens: 10 });\n',
        })
        aggregator = _aggregator(root)

        report = aggregator.generate_report(await aggregator.analyze_project())
        data = json.loads(json.dumps(report.to_dict()))

        assert set(data) == {"summary", "recommendations", "dependency_graph", "files"}
        assert data["summary"]["security_findings"]["critical"] == 1
        assert data["recommendations"][0]["priority"] == "critical"
        assert data["summary"]["total_api_calls"] == 1


class TestFileIsolation:
    """Failures stay inside the file or analyzer that caused them."""

    @pytest.mark.asyncio
    async def test_failing_analyzer_keeps_other_results(self, make_project, monkeypatch):
        root = make_project({"svc.ts": "eval(code);\nexport function run(a) { if (a) { return 1; } return 0; }\n"})
        aggregator = _aggregator(root)

        def explode(*args, **kwargs):
            raise RuntimeError("scanner crashed")

        monkeypatch.setattr(aggregator.security, "analyze", explode)
        result = await aggregator.analyze_file(root / "svc.ts")

        assert result.analyzer_errors == ["security"]
        assert result.security == []
        assert result.complexity.cyclomatic_complexity == 2
        assert result.parse_error is None

    @pytest.mark.asyncio
    async def test_slow_file_times_out(self, make_project, monkeypatch):
        root = make_project({"slow.ts": "export const x = 1;\n", "fast.ts": "export const y = 2;\n"})
        aggregator = _aggregator(root, file_timeout_seconds=0.05)
        original = aggregator.analyze_file

        async def maybe_slow(path):
            if path.name == "slow.ts":
                await asyncio.sleep(5)
            return await original(path)

        monkeypatch.setattr(aggregator, "analyze_file", maybe_slow)
        results = {r.path: r for r in await aggregator.analyze_project()}

        assert "Timed out" in results["slow.ts"].parse_error
        assert results["fast.ts"].parse_error is None

    @pytest.mark.asyncio
    async def test_progress_callback_sees_every_file(self, make_project):
        root = make_project({f"m{i}.ts": f"export const v{i} = {i};\n" for i in range(5)})
        aggregator = _aggregator(root, max_concurrency=2)
        seen = []

        await aggregator.analyze_project(on_file_done=lambda r: seen.append(r.path))

        assert sorted(seen) == [f"m{i}.ts" for i in range(5)]


def test_suggestions_from_findings() -> None:
    aggregator = ProjectAggregator()
    source = "function f(a, b, c, d, e) { eval(a); }"
    result = asyncio.run(aggregator.analyze_source(source, "f.ts", TYPESCRIPT))
    kinds = [s.kind for s in result.suggestions]

    assert "long_parameter_list" in kinds
    assert "security:code_evaluation" in kinds
