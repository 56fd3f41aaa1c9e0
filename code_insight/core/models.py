"""
Core data models for analysis results.

This module contains plain data structures produced by the analyzers and the
project aggregator. Every record serializes to nested dicts through
dataclasses.asdict.
"""

from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field, asdict

SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


@dataclass
class Location:
    """Position of a finding. Lines are 1-based, columns 0-based."""
    file: str
    line: int = 0
    column: int = 0


@dataclass
class LineMetrics:
    total: int = 0
    code: int = 0
    comment: int = 0
    blank: int = 0
    comment_ratio: float = 0.0


@dataclass
class HalsteadMetrics:
    unique_operators: int = 0
    unique_operands: int = 0
    total_operators: int = 0
    total_operands: int = 0
    vocabulary: int = 0
    length: int = 0
    volume: float = 0.0
    difficulty: float = 0.0
    effort: float = 0.0
    time: float = 0.0
    bugs_estimate: float = 0.0


@dataclass
class FunctionMetric:
    name: str
    line: int
    cyclomatic_complexity: int = 1
    cognitive_complexity: int = 0
    parameter_count: int = 0
    line_count: int = 0
    max_nesting_depth: int = 0
    statement_count: int = 0


@dataclass
class ClassMetric:
    name: str
    line: int
    method_count: int = 0
    property_count: int = 0
    inheritance_depth: int = 0
    weighted_methods: int = 0
    lack_of_cohesion: float = 0.0
    superclass: Optional[str] = None


@dataclass
class ComplexityMetrics:
    cyclomatic_complexity: int = 1
    cognitive_complexity: int = 0
    halstead: HalsteadMetrics = field(default_factory=HalsteadMetrics)
    maintainability_index: float = 100.0
    line_metrics: LineMetrics = field(default_factory=LineMetrics)
    per_function: List[FunctionMetric] = field(default_factory=list)
    per_class: List[ClassMetric] = field(default_factory=list)
    complexity_level: str = "low"
    maintainability_level: str = "excellent"


@dataclass
class DependencyEdge:
    source: str
    target: str
    kind: str = "static"  # static | dynamic
    specifier: str = ""  # import text as written
    external: bool = False
    circular: bool = False


@dataclass
class GraphNode:
    id: str
    external: bool = False
    dev: bool = False
    orphaned: bool = False
    in_cycle: bool = False


@dataclass
class DependencyGraph:
    nodes: Dict[str, GraphNode] = field(default_factory=dict)
    edges: List[DependencyEdge] = field(default_factory=list)
    circular_chains: List[List[str]] = field(default_factory=list)
    strongly_connected_components: List[List[str]] = field(default_factory=list)
    orphaned_files: List[str] = field(default_factory=list)
    metrics: Dict[str, float] = field(default_factory=dict)


@dataclass
class PatternFinding:
    kind: str
    location: Location
    confidence: float
    name: str = ""


@dataclass
class AntiPatternFinding:
    kind: str
    location: Location
    severity: str
    message: str
    suggestion: str


@dataclass
class SecurityFinding:
    kind: str
    severity: str  # critical | high | medium | low
    location: Location
    message: str
    recommendation: str
    cwe: Optional[str] = None


@dataclass
class APIUsageRecord:
    provider: str
    endpoint: str
    location: Location
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    frequency: int = 1
    estimated_cost: float = 0.0


@dataclass
class APIUsageSummary:
    records: List[APIUsageRecord] = field(default_factory=list)
    endpoint_counts: Dict[str, int] = field(default_factory=dict)
    total_calls: int = 0
    total_estimated_cost: float = 0.0
    patterns: Dict[str, bool] = field(default_factory=dict)


@dataclass
class RefactoringSuggestion:
    kind: str
    priority: str  # high | medium | low
    location: Location
    message: str


@dataclass
class FileAnalysisResult:
    """Everything the analyzers found in one file."""
    path: str
    language_id: str = ""
    complexity: ComplexityMetrics = field(default_factory=ComplexityMetrics)
    dependencies: List[DependencyEdge] = field(default_factory=list)
    patterns: List[PatternFinding] = field(default_factory=list)
    anti_patterns: List[AntiPatternFinding] = field(default_factory=list)
    security: List[SecurityFinding] = field(default_factory=list)
    api_usage: APIUsageSummary = field(default_factory=APIUsageSummary)
    suggestions: List[RefactoringSuggestion] = field(default_factory=list)
    parse_error: Optional[str] = None
    analyzer_errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0


@dataclass
class Recommendation:
    category: str
    priority: str  # critical | high | medium | low
    message: str


@dataclass
class ProjectReport:
    summary: Dict[str, Any] = field(default_factory=dict)
    recommendations: List[Recommendation] = field(default_factory=list)
    dependency_graph: DependencyGraph = field(default_factory=DependencyGraph)
    files: List[FileAnalysisResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
