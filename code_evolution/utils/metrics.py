"""Summary statistics for analysis runs."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..models import FileResult, Issue, Severity


@dataclass
class AnalysisSummary:
    """Totals calculated from a batch of file results."""

    # File counts
    files_analyzed: int = 0
    files_failed: int = 0

    # Issue counts
    total_issues: int = 0
    total_solutions: int = 0

    # Severity breakdown
    critical_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0

    # Per detector / per issue type
    by_detector: Dict[str, int] = field(default_factory=dict)
    by_type: Dict[str, int] = field(default_factory=dict)

    # Timing
    duration_ms: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "filesAnalyzed": self.files_analyzed,
            "filesFailed": self.files_failed,
            "totalIssues": self.total_issues,
            "totalSolutions": self.total_solutions,
            "bySeverity": {
                "critical": self.critical_count,
                "high": self.high_count,
                "medium": self.medium_count,
                "low": self.low_count,
            },
            "byDetector": dict(self.by_detector),
            "byType": dict(self.by_type),
            "durationMs": self.duration_ms,
        }


def meets_severity(issue: Issue, threshold: Optional[str]) -> bool:
    """True when the issue is at or above the named severity."""
    if threshold is None:
        return True
    return issue.severity.rank >= Severity.parse(threshold).rank


def summarize_results(
    results: List[FileResult],
    duration_ms: Optional[int] = None
) -> AnalysisSummary:
    """
    Calculate an AnalysisSummary from file results.

    Args:
        results: File results from an analysis run
        duration_ms: Wall-clock duration of the run

    Returns:
        AnalysisSummary with counts filled in
    """
    summary = AnalysisSummary(duration_ms=duration_ms)
    severity_counts = {s.value: 0 for s in Severity}

    for result in results:
        if result.failed:
            summary.files_failed += 1
            continue
        summary.files_analyzed += 1
        for detector_result in result.results:
            name = detector_result.detector_name
            summary.by_detector[name] = summary.by_detector.get(name, 0) + len(detector_result.issues)
            for issue in detector_result.issues:
                summary.total_issues += 1
                summary.total_solutions += len(issue.solutions)
                severity_counts[issue.severity.value] += 1
                summary.by_type[issue.type] = summary.by_type.get(issue.type, 0) + 1

    summary.critical_count = severity_counts["critical"]
    summary.high_count = severity_counts["high"]
    summary.medium_count = severity_counts["medium"]
    summary.low_count = severity_counts["low"]
    return summary


def exceeds_fail_on(results: List[FileResult], fail_on: Optional[str]) -> bool:
    """True when any issue is at or above the fail-on severity."""
    if fail_on is None:
        return False
    return any(
        meets_severity(issue, fail_on)
        for result in results
        for issue in result.issues
    )


def format_summary(summary: AnalysisSummary) -> str:
    """
    Format a summary as a human-readable report.

    Args:
        summary: AnalysisSummary object

    Returns:
        Formatted report string
    """
    lines = [
        "## Analysis Summary",
        "",
        f"- Files analyzed: {summary.files_analyzed}",
        f"- Files failed: {summary.files_failed}",
        f"- Issues found: {summary.total_issues}",
        f"- Solutions proposed: {summary.total_solutions}",
        "",
        "### Severity Breakdown",
        f"- Critical: {summary.critical_count}",
        f"- High: {summary.high_count}",
        f"- Medium: {summary.medium_count}",
        f"- Low: {summary.low_count}",
    ]

    if summary.by_detector:
        lines.append("")
        lines.append("### By Detector")
        for name, count in sorted(summary.by_detector.items()):
            lines.append(f"- {name}: {count}")

    if summary.duration_ms:
        lines.append("")
        lines.append(f"Duration: {summary.duration_ms / 1000:.2f}s")

    return "\n".join(lines)
