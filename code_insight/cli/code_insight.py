"""
Command-line entry point: analyze a project and write the JSON report.
"""

from tqdm import tqdm
import sys
from pathlib import Path
from typing import List, Dict, Any, Optional
import json
import argparse
import asyncio
import logging

from code_insight.core.aggregator import ProjectAggregator
from code_insight.core.config import AnalysisConfig, ConfigError, load_config
from code_insight.core.models import FileAnalysisResult, ProjectReport
from code_insight.core.utils import discover_files


class CodeInsightAnalyzer:
    """Runs a full project scan with a progress bar and exports the report."""

    def __init__(self, root_dir: Path, config: AnalysisConfig, show_progress: bool = True):
        self.root_dir = root_dir
        self.config = config
        self.show_progress = show_progress
        self.aggregator = ProjectAggregator(config=config, project_root=root_dir)

    def discover(self) -> List[Path]:
        files = discover_files(self.root_dir, self.config.extensions, self.config.ignored_patterns)
        print(f"🔍 Found {len(files)} source files under {self.root_dir}")
        return files

    async def _analyze_async(self, files: List[Path]) -> List[FileAnalysisResult]:
        with tqdm(total=len(files), desc="Analyzing files", disable=not self.show_progress) as pbar:
            return await self.aggregator.analyze_project(files, on_file_done=lambda _: pbar.update(1))

    def analyze(self) -> ProjectReport:
        files = self.discover()
        results = asyncio.run(self._analyze_async(files))
        return self.aggregator.generate_report(results)

    def export_report(self, output_path: str) -> ProjectReport:
        """Analyze and export the report to a file."""
        report = self.analyze()
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)
        print(f"📄 Report exported to {output_path}")
        return report


def print_summary(report: ProjectReport) -> None:
    summary = report.summary
    security = summary.get("security_findings", {})
    print("\n📊 Analysis summary")
    print(f"   Files analyzed: {summary['analyzed_files']}/{summary['total_files']}")
    print(f"   Average cyclomatic complexity: {summary['average_cyclomatic_complexity']:.2f}")
    print(f"   Average maintainability index: {summary['average_maintainability_index']:.1f}")
    print(f"   Patterns: {summary['total_patterns']}  Anti-patterns: {summary['total_anti_patterns']}")
    print("   Security: " + ", ".join(f"{level}={count}" for level, count in security.items()))
    print(f"   Circular dependencies: {summary['circular_dependencies']}")
    if report.recommendations:
        print("\n💡 Recommendations")
        for rec in report.recommendations:
            print(f"   [{rec.priority}] {rec.message}")


def _add_directory_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "directory",
        nargs='?',
        default=None,
        help="Path to project directory. If not provided, uses 'project_root' from config or defaults to current directory.",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="code-insight: complexity, dependency, pattern, security and API usage analysis for TypeScript/JavaScript."
    )
    _add_directory_arg(parser)
    parser.add_argument("--config", help="Path to configuration YAML file (default: codeinsight.config.yaml)")
    parser.add_argument("--output", help="Output file for the analysis report (default: analysis-report.json in the project root).")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level (overrides config).")
    parser.add_argument("--max-concurrency", type=int,
                        help="Maximum number of files analyzed at once (overrides config).")
    parser.add_argument("--timeout", type=float, dest="file_timeout_seconds",
                        help="Per-file analysis timeout in seconds (overrides config).")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    return parser


def _resolve_config_and_root(args: argparse.Namespace):
    cli_overrides: Dict[str, Any] = {
        'log_level': args.log_level,
        'max_concurrency': args.max_concurrency,
        'file_timeout_seconds': args.file_timeout_seconds,
    }
    if args.directory:
        cli_overrides['project_root'] = str(Path(args.directory).resolve())
    config = load_config(config_path=args.config, cli_args=cli_overrides)
    root_dir = Path(config.project_root).resolve() if config.project_root else Path.cwd()
    return config, root_dir


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config, root_dir = _resolve_config_and_root(args)
    except ConfigError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        return 2
    _configure_logging(config.log_level)

    if not root_dir.is_dir():
        print(f"❌ Error: {root_dir} is not a valid directory for analysis.", file=sys.stderr)
        return 1

    output_path = args.output or config.report_path
    if not Path(output_path).is_absolute():
        output_path = str(root_dir / output_path)

    analyzer = CodeInsightAnalyzer(root_dir, config, show_progress=not args.no_progress)
    try:
        report = analyzer.export_report(output_path)
    except OSError as e:
        print(f"❌ Error writing report to {output_path}: {e}", file=sys.stderr)
        return 1
    s = report.summary
    logging.info(
        f"Analysis complete: files={s['total_files']} patterns={s['total_patterns']} "
        f"critical={s['security_findings']['critical']} high={s['security_findings']['high']} "
        f"api_calls={s['total_api_calls']} avg_cc={s['average_cyclomatic_complexity']:.2f} "
        f"recommendations={len(report.recommendations)}"
    )
    print_summary(report)
    return 0


def main():
    """Main entry point for the analyzer."""
    try:
        exit_code = run()
        sys.exit(exit_code)
    except Exception as e:
        print(f"\n❌ An unexpected error occurred: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
