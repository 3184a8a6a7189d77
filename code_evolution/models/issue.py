"""Data models for detected issues."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .solution import Solution


class Severity(Enum):
    """Issue severity levels."""
    LOW = "low"             # Minor inefficiency
    MEDIUM = "medium"       # Noticeable cost at scale
    HIGH = "high"           # Serious performance / resource problem
    CRITICAL = "critical"   # Blocks the runtime or grows without bound

    @property
    def rank(self) -> int:
        """Ordinal used for threshold comparisons (low=0 .. critical=3)."""
        return SEVERITY_ORDER.index(self)

    @classmethod
    def parse(cls, value: str) -> "Severity":
        """Parse a severity tag, case-insensitive."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown severity '{value}'. Expected one of: "
                f"{', '.join(s.value for s in SEVERITY_ORDER)}"
            )


SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


@dataclass(frozen=True)
class EstimatedImpact:
    """Estimated cost of leaving an issue unfixed."""
    severity_score: int                # 0-10
    description: str
    confidence_score: int              # 0-100
    metrics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "severityScore": self.severity_score,
            "description": self.description,
            "confidenceScore": self.confidence_score,
            "metrics": dict(self.metrics),
        }


@dataclass
class Issue:
    """A finding emitted by a detector.

    Only ``solutions`` changes after creation.
    """
    id: str
    type: str
    severity: Severity
    file_path: str
    line_number: Optional[int]
    title: str
    description: str
    before_snippet: str
    after_snippet: Optional[str] = None
    estimated_impact: Optional[EstimatedImpact] = None
    solutions: List[Solution] = field(default_factory=list)

    def metric(self, key: str, default: Any = None) -> Any:
        """Read one value from the impact metrics."""
        if self.estimated_impact is None:
            return default
        return self.estimated_impact.metrics.get(key, default)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "severity": self.severity.value,
            "filePath": self.file_path,
            "lineNumber": self.line_number,
            "title": self.title,
            "description": self.description,
            "beforeSnippet": self.before_snippet,
        }
        if self.after_snippet is not None:
            data["afterSnippet"] = self.after_snippet
        if self.estimated_impact is not None:
            data["estimatedImpact"] = self.estimated_impact.to_dict()
        data["solutions"] = [s.to_dict() for s in self.solutions]
        return data


@dataclass
class DetectorResult:
    """Issues produced by one detector for one file."""
    detector_name: str
    issues: List[Issue] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "detectorName": self.detector_name,
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass
class FileResult:
    """Outcome of analyzing one file in a batch."""
    file_path: str
    results: List[DetectorResult] = field(default_factory=list)
    error: Optional[str] = None
    duration_ms: Optional[int] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def issues(self) -> List[Issue]:
        """All issues across detectors, in report order."""
        return [issue for result in self.results for issue in result.issues]

    def to_dict(self) -> dict:
        data = {
            "filePath": self.file_path,
            "results": [r.to_dict() for r in self.results],
        }
        if self.error is not None:
            data["error"] = self.error
        return data
