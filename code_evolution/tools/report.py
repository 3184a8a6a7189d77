"""Text, JSON and SARIF renderings of analysis results."""

import json
from typing import Dict, List, Optional

from .. import __version__
from ..models import FileResult, Issue, Severity
from ..utils.metrics import AnalysisSummary, format_summary

SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
SARIF_LEVELS = {
    Severity.CRITICAL: "error",
    Severity.HIGH: "error",
    Severity.MEDIUM: "warning",
    Severity.LOW: "note",
}
TOOL_NAME = "code-evolution"


def format_text(results: List[FileResult], summary: Optional[AnalysisSummary] = None, max_solutions: int = 3) -> str:
    """
    Human-readable report grouped by file.

    Args:
        results: File results
        summary: Totals appended at the end
        max_solutions: Solutions listed per issue

    Returns:
        Report text
    """
    lines: List[str] = []
    for result in results:
        if result.failed:
            lines.append(f"{result.file_path}")
            lines.append(f"  ERROR {result.error}")
            lines.append("")
            continue
        issues = result.issues
        if not issues:
            continue
        lines.append(f"{result.file_path}")
        for issue in issues:
            location = f"{issue.line_number}" if issue.line_number is not None else "-"
            lines.append(f"  {location:>5}  [{issue.severity.value.upper()}] {issue.title} ({issue.type})")
            lines.append(f"         {issue.description}")
            for solution in issue.solutions[:max_solutions]:
                lines.append(
                    f"         #{solution.rank} {solution.type} "
                    f"fitness={solution.fitness_score:.2f} ~{solution.estimated_minutes}min "
                    f"risk={solution.risk_level.value}"
                )
        lines.append("")

    if summary is not None:
        lines.append(format_summary(summary))
    elif not lines:
        lines.append("No issues found.")
    return "\n".join(lines)


def format_json(results: List[FileResult], summary: Optional[AnalysisSummary] = None) -> str:
    """JSON document with every file result and the summary."""
    data: Dict[str, object] = {"files": [r.to_dict() for r in results]}
    if summary is not None:
        data["summary"] = summary.to_dict()
    return json.dumps(data, indent=2)


def _sarif_result(issue: Issue) -> dict:
    result = {
        "ruleId": issue.type,
        "level": SARIF_LEVELS[issue.severity],
        "message": {"text": f"{issue.title}: {issue.description}"},
        "locations": [{
            "physicalLocation": {
                "artifactLocation": {"uri": issue.file_path},
                "region": {"startLine": issue.line_number or 1},
            }
        }],
        "partialFingerprints": {"issueId": issue.id},
        "properties": {"severity": issue.severity.value},
    }
    if issue.solutions:
        result["properties"]["topSolution"] = issue.solutions[0].type
    return result


def format_sarif(results: List[FileResult]) -> str:
    """SARIF 2.1.0 log; critical/high map to error, medium to warning, low to note."""
    rules: Dict[str, dict] = {}
    sarif_results = []
    notifications = []

    for result in results:
        if result.failed:
            notifications.append({
                "level": "error",
                "message": {"text": result.error},
                "locations": [{"physicalLocation": {"artifactLocation": {"uri": result.file_path}}}],
            })
            continue
        for issue in result.issues:
            if issue.type not in rules:
                rules[issue.type] = {
                    "id": issue.type,
                    "name": issue.type,
                    "shortDescription": {"text": issue.title},
                }
            sarif_results.append(_sarif_result(issue))

    log = {
        "$schema": SARIF_SCHEMA,
        "version": "2.1.0",
        "runs": [{
            "tool": {
                "driver": {
                    "name": TOOL_NAME,
                    "version": __version__,
                    "rules": list(rules.values()),
                }
            },
            "results": sarif_results,
            "invocations": [{
                "executionSuccessful": not notifications,
                "toolExecutionNotifications": notifications,
            }],
        }],
    }
    return json.dumps(log, indent=2)


def format_report(
    results: List[FileResult],
    output_format: str = "text",
    summary: Optional[AnalysisSummary] = None,
) -> str:
    """Render results in one of the supported output formats."""
    if output_format == "json":
        return format_json(results, summary)
    if output_format == "sarif":
        return format_sarif(results)
    if output_format == "text":
        return format_text(results, summary)
    raise ValueError(f"Unknown output format '{output_format}'")
