import json
import re
import yaml
import logging
from typing import List, Optional, Dict, Any
from pathlib import Path
from pydantic import BaseModel, Field, ValidationError

# Default configuration values
DEFAULT_CONFIG_PATH = "codeinsight.config.yaml"
DEFAULT_IGNORED_PATTERNS = ["node_modules", "dist", "build", "coverage", ".git", ".next"]
DEFAULT_EXTENSIONS = [".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".mts", ".cts"]
DEFAULT_PROJECT_ROOT = None
DEFAULT_TSCONFIG_PATH = "tsconfig.json"
DEFAULT_REPORT_PATH = "analysis-report.json"
DEFAULT_MAX_CONCURRENCY = 8
DEFAULT_LOG_LEVEL = "INFO"

# Thresholds
DEFAULT_GOD_CLASS_MEMBERS = 20
DEFAULT_LONG_METHOD_STATEMENTS = 30
DEFAULT_FEATURE_ENVY_REFERENCES = 5
DEFAULT_LARGE_INTERFACE_MEMBERS = 10
DEFAULT_DEEP_INHERITANCE_EXTENDS = 2
DEFAULT_COMPLEX_UNION_TYPES = 5
DEFAULT_PROP_DRILLING_PROPS = 7
DEFAULT_LONG_PARAMETER_LIST = 4
DEFAULT_TIGHT_COUPLING_RATIO = 2.0
DEFAULT_TIGHT_COUPLING_MIN_IMPORTS = 3
DEFAULT_MAX_FUNCTION_COMPLEXITY = 10
DEFAULT_MAX_FILE_COMPLEXITY = 20
DEFAULT_MAX_NESTING_DEPTH = 3
DEFAULT_MIN_MAINTAINABILITY = 65.0
DEFAULT_MAX_LCOM = 0.7
DEFAULT_PATTERN_DOCUMENTATION_THRESHOLD = 5
DEFAULT_API_CALL_THRESHOLD = 10

_TSCONFIG_COMMENT_RE = re.compile(r'//[^\n]*|/\*.*?\*/|("(?:\\.|[^"\\])*")', re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


class ConfigError(ValueError):
    """Raised when an explicitly requested configuration file is unusable."""


class Thresholds(BaseModel):
    """
    Every tunable limit used by the analyzers and the aggregator.
    """
    god_class_members: int = DEFAULT_GOD_CLASS_MEMBERS
    long_method_statements: int = DEFAULT_LONG_METHOD_STATEMENTS
    feature_envy_references: int = DEFAULT_FEATURE_ENVY_REFERENCES
    large_interface_members: int = DEFAULT_LARGE_INTERFACE_MEMBERS
    deep_inheritance_extends: int = DEFAULT_DEEP_INHERITANCE_EXTENDS
    complex_union_types: int = DEFAULT_COMPLEX_UNION_TYPES
    prop_drilling_props: int = DEFAULT_PROP_DRILLING_PROPS
    long_parameter_list: int = DEFAULT_LONG_PARAMETER_LIST
    tight_coupling_ratio: float = DEFAULT_TIGHT_COUPLING_RATIO
    tight_coupling_min_imports: int = DEFAULT_TIGHT_COUPLING_MIN_IMPORTS
    max_function_complexity: int = DEFAULT_MAX_FUNCTION_COMPLEXITY
    max_file_complexity: int = DEFAULT_MAX_FILE_COMPLEXITY
    max_nesting_depth: int = DEFAULT_MAX_NESTING_DEPTH
    min_maintainability: float = DEFAULT_MIN_MAINTAINABILITY
    max_lcom: float = DEFAULT_MAX_LCOM
    pattern_documentation_threshold: int = DEFAULT_PATTERN_DOCUMENTATION_THRESHOLD
    api_call_threshold: int = DEFAULT_API_CALL_THRESHOLD


class AnalysisConfig(BaseModel):
    """
    Central configuration model for code-insight.
    """
    project_root: Optional[str] = Field(default=DEFAULT_PROJECT_ROOT)
    ignored_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_PATTERNS))
    extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    path_aliases: Dict[str, List[str]] = Field(default_factory=dict)
    tsconfig_path: str = DEFAULT_TSCONFIG_PATH
    entry_points: List[str] = Field(default_factory=list)
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    file_timeout_seconds: Optional[float] = None
    allow_partial_parse: bool = False
    report_path: str = DEFAULT_REPORT_PATH
    log_level: str = DEFAULT_LOG_LEVEL
    thresholds: Thresholds = Field(default_factory=Thresholds)

    # Allow extra fields for flexibility
    class Config:
        extra = "allow"

    def require_project_root(self) -> Path:
        if not self.project_root:
            raise ValueError("project_root must be set in config to discover source files")
        return Path(self.project_root).resolve()


def load_config(
    config_path: Optional[str] = None,
    cli_args: Optional[Dict[str, Any]] = None
) -> AnalysisConfig:
    """
    Load configuration from file and overrides.

    Priority:
    1. CLI Arguments (if provided and not None)
    2. Config File (if provided or found at default path)
    3. Default Values

    Args:
        config_path: Path to the YAML config file. If None, tries 'codeinsight.config.yaml'.
        cli_args: Dictionary of CLI arguments to override config values.

    Returns:
        AnalysisConfig: The resolved configuration object.

    Raises:
        ConfigError: If an explicitly given config file is not a YAML mapping,
            or if the merged values fail validation.
    """
    config_data: Dict[str, Any] = {}

    target_path = config_path if config_path else DEFAULT_CONFIG_PATH
    path_obj = Path(target_path)

    if path_obj.exists() and path_obj.is_file():
        try:
            with open(path_obj, 'r', encoding='utf-8') as f:
                file_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            if config_path:
                raise ConfigError(f"Invalid YAML in config file {target_path}: {e}") from e
            logging.warning(f"Failed to load config file {target_path}: {e}")
            file_data = None
        if file_data and not isinstance(file_data, dict):
            if config_path:
                raise ConfigError(f"Config file {target_path} must contain a mapping")
            logging.warning(f"Ignoring config file {target_path}: not a mapping")
            file_data = None
        if file_data:
            config_data.update(file_data)
            logging.info(f"Loaded configuration from {target_path}")
    elif config_path:
        logging.warning(f"Config file not found at explicit path: {config_path}")

    if cli_args:
        for key, value in cli_args.items():
            if value is not None:
                config_data[key] = value

    try:
        return AnalysisConfig(**config_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _strip_json_comments(text: str) -> str:
    # tsconfig.json allows comments and trailing commas
    text = _TSCONFIG_COMMENT_RE.sub(lambda m: m.group(1) or "", text)
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def load_path_aliases(project_root: Path, tsconfig_path: str = DEFAULT_TSCONFIG_PATH) -> Dict[str, List[str]]:
    """
    Read compilerOptions.paths from tsconfig.json into an alias map.

    Replacement prefixes are made relative to the project root, honouring
    compilerOptions.baseUrl. A missing or malformed tsconfig yields an empty
    map, which makes the dependency builder fall back to relative/external
    resolution.
    """
    path = Path(project_root) / tsconfig_path
    if not path.is_file():
        return {}
    try:
        data = json.loads(_strip_json_comments(path.read_text(encoding="utf-8")))
    except (OSError, ValueError) as e:
        logging.warning(f"Could not read path aliases from {path}: {e}")
        return {}

    options = data.get("compilerOptions") if isinstance(data, dict) else None
    if not isinstance(options, dict):
        return {}
    paths = options.get("paths")
    if not isinstance(paths, dict):
        return {}

    base_url = str(options.get("baseUrl") or ".")
    base = Path(base_url)
    aliases: Dict[str, List[str]] = {}
    for pattern, targets in paths.items():
        if isinstance(targets, str):
            targets = [targets]
        if not isinstance(targets, list):
            logging.warning(f"Ignoring tsconfig path alias {pattern!r}: expected a list")
            continue
        aliases[pattern] = [(base / str(t)).as_posix().removeprefix("./") for t in targets]
    logging.info(f"Loaded {len(aliases)} path aliases from {path}")
    return aliases
