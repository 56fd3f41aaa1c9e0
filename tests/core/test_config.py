from __future__ import annotations

import pytest

from code_insight.core.config import (
    DEFAULT_LONG_METHOD_STATEMENTS,
    AnalysisConfig,
    ConfigError,
    load_config,
    load_path_aliases,
)


def test_defaults_without_config_file(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    config = load_config()

    assert config.project_root is None
    assert config.report_path == "analysis-report.json"
    assert config.thresholds.long_method_statements == DEFAULT_LONG_METHOD_STATEMENTS
    assert ".tsx" in config.extensions


def test_yaml_values_and_cli_overrides(tmp_path) -> None:
    config_file = tmp_path / "insight.yaml"
    config_file.write_text(
        "project_root: /srv/app\n"
        "max_concurrency: 2\n"
        "entry_points: ['src/main.ts']\n"
        "thresholds:\n"
        "  god_class_members: 40\n"
    )

    config = load_config(str(config_file), {"max_concurrency": 16, "log_level": None})

    assert config.project_root == "/srv/app"
    assert config.max_concurrency == 16
    assert config.log_level == "INFO"
    assert config.entry_points == ["src/main.ts"]
    assert config.thresholds.god_class_members == 40
    assert config.thresholds.long_method_statements == DEFAULT_LONG_METHOD_STATEMENTS


def test_explicit_malformed_config_raises(tmp_path) -> None:
    broken = tmp_path / "broken.yaml"
    broken.write_text("thresholds: [unclosed\n")
    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n")

    with pytest.raises(ConfigError):
        load_config(str(broken))
    with pytest.raises(ConfigError):
        load_config(str(listing))


def test_invalid_values_raise_config_error(tmp_path) -> None:
    config_file = tmp_path / "bad.yaml"
    config_file.write_text("max_concurrency: lots\n")

    with pytest.raises(ConfigError):
        load_config(str(config_file))


def test_missing_explicit_config_falls_back_to_defaults(tmp_path) -> None:
    config = load_config(str(tmp_path / "absent.yaml"))

    assert config == AnalysisConfig()


def test_require_project_root() -> None:
    with pytest.raises(ValueError):
        AnalysisConfig().require_project_root()


def test_path_aliases_from_tsconfig(tmp_path) -> None:
    (tmp_path / "tsconfig.json").write_text(
        """{
  // comments and trailing commas are allowed in tsconfig
  "compilerOptions": {
    "baseUrl": "./src",
    "paths": {
      "@lib/*": ["lib/*"],
      "@config": "config/index.ts",
    },
  },
}
"""
    )

    assert load_path_aliases(tmp_path) == {
        "@lib/*": ["src/lib/*"],
        "@config": ["src/config/index.ts"],
    }


def test_path_aliases_tolerate_missing_or_broken_tsconfig(tmp_path) -> None:
    assert load_path_aliases(tmp_path) == {}

    (tmp_path / "tsconfig.json").write_text("{ not json")
    assert load_path_aliases(tmp_path) == {}
