"""Progress sinks, report formatters and remote sources."""

from .progress import ProgressRecorder, QueueProgressSink
from .report import format_json, format_report, format_sarif, format_text
from .github_source import GitHubSource

__all__ = [
    "ProgressRecorder",
    "QueueProgressSink",
    "format_json",
    "format_report",
    "format_sarif",
    "format_text",
    "GitHubSource",
]
