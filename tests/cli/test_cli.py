from __future__ import annotations

import json

from code_insight.cli.code_insight import build_parser, run


def test_parser_defaults() -> None:
    args = build_parser().parse_args([])

    assert args.directory is None
    assert args.config is None
    assert args.no_progress is False
    assert args.file_timeout_seconds is None


def test_run_writes_report(make_project, tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    root = make_project({
        "src/index.ts": 'import { helper } from "./helper";\nhelper();\n',
        "src/helper.ts": "export function helper() { return 1; }\n",
        "node_modules/dep/index.js": "module.exports = 1;\n",
    })

    exit_code = run([str(root), "--output", "out.json", "--no-progress", "--max-concurrency", "2"])

    assert exit_code == 0
    report = json.loads((root / "out.json").read_text(encoding="utf-8"))
    assert report["summary"]["total_files"] == 2
    assert sorted(f["path"] for f in report["files"]) == ["src/helper.ts", "src/index.ts"]
    assert "Report exported" in capsys.readouterr().out


def test_invalid_config_exits_with_status_two(make_project, tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    root = make_project({"a.ts": "export const a = 1;\n"})
    config_file = tmp_path / "bad.yaml"
    config_file.write_text("- not\n- a mapping\n")

    assert run([str(root), "--config", str(config_file), "--no-progress"]) == 2


def test_missing_directory_fails(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    assert run([str(tmp_path / "nope"), "--no-progress"]) == 1
