"""Tests for configuration, reporting, progress sinks and the CLI."""

import asyncio
import json
import sys

import pytest

from code_evolution.cli import init_repository
from code_evolution.config import (
    AnalysisConfig,
    ConfigError,
    EvolutionConfig,
    find_config_file,
)
from code_evolution.detectors import create_impact
from code_evolution.main import main
from code_evolution.models import (
    DetectorResult,
    FileResult,
    Issue,
    ProgressEvent,
    ProgressEventType,
    RiskLevel,
    Severity,
    Solution,
)
from code_evolution.tools import (
    ProgressRecorder,
    QueueProgressSink,
    format_json,
    format_report,
    format_sarif,
    format_text,
)
from code_evolution.utils import exceeds_fail_on, format_summary, summarize_results


def make_issue(issue_type="timer_leak", severity=Severity.CRITICAL, line=4):
    return Issue(
        id=f"{issue_type}-{line:012d}",
        type=issue_type,
        severity=severity,
        file_path="src/app.js",
        line_number=line,
        title="Timer Not Cleared",
        description="setInterval() is never cleared.",
        before_snippet="setInterval(tick, 1000)",
        estimated_impact=create_impact(9, "runs forever", 85, {"framework": "none"}),
    )


def make_results():
    issue = make_issue()
    issue.solutions = [Solution(
        id=f"sol-{issue.id}-class_timer_cleanup",
        issue_id=issue.id,
        rank=1,
        type="class_timer_cleanup",
        code="// fix\n",
        fitness_score=93.5,
        reasoning="Clear the timer on dispose.",
        estimated_minutes=15,
        risk_level=RiskLevel.LOW,
    )]
    minor = make_issue("array_push_in_loop", Severity.LOW, line=9)
    return [
        FileResult(
            file_path="src/app.js",
            results=[
                DetectorResult("Memory Leak Detector", [issue]),
                DetectorResult("Inefficient Loop Detector", [minor]),
            ],
        ),
        FileResult(file_path="src/broken.js", error="Parse error in src/broken.js: Syntax error"),
    ]


class TestAnalysisConfig:
    """Tests for rc-file and environment configuration."""

    def test_from_dict(self):
        """Given an rc dictionary, should map every section onto the config."""
        # Given
        data = {
            "detectors": {"memory-leak": {"enabled": False}},
            "ignore": ["**/legacy/**"],
            "severity": {"minReportLevel": "medium", "failOn": "high"},
            "output": {"format": "sarif", "file": "out.sarif"},
            "evolution": {"enabled": True, "populationSize": 12, "seed": 3},
        }

        # When
        config = AnalysisConfig.from_dict(data)

        # Then
        assert not config.is_detector_enabled("memory-leak")
        assert config.is_detector_enabled("n1-query")
        assert "**/legacy/**" in config.ignore
        assert "**/node_modules/**" in config.ignore
        assert config.min_severity == "medium"
        assert config.fail_on == "high"
        assert config.output_format == "sarif"
        assert config.output_file == "out.sarif"
        assert config.evolution.enabled
        assert config.evolution.population_size == 12
        assert config.evolution.seed == 3

    @pytest.mark.parametrize("data", [
        {"severity": {"minReportLevel": "urgent"}},
        {"output": {"format": "xml"}},
        {"detectors": {"spelling": True}},
        {"evolution": {"mutationRate": 1.5}},
        {"dbPatterns": [{"methods": ["x"]}]},
    ])
    def test_invalid_values_rejected(self, data):
        """Given an invalid setting, should raise ConfigError."""
        with pytest.raises(ConfigError):
            AnalysisConfig.from_dict(data)

    def test_extends_merges_base(self, tmp_path):
        """Given a config extending another, should merge the child over the base."""
        # Given
        (tmp_path / "base.json").write_text(json.dumps({
            "severity": {"minReportLevel": "high", "failOn": "critical"},
            "output": {"format": "json"},
        }))
        child = tmp_path / ".codeevolutionrc.json"
        child.write_text(json.dumps({"extends": "base.json", "severity": {"minReportLevel": "medium"}}))

        # When
        config = AnalysisConfig.from_file(child)

        # Then
        assert config.min_severity == "medium"
        assert config.fail_on == "critical"
        assert config.output_format == "json"

    def test_circular_extends_rejected(self, tmp_path):
        """Given two configs extending each other, should raise ConfigError."""
        # Given
        (tmp_path / "a.json").write_text(json.dumps({"extends": "b.json"}))
        (tmp_path / "b.json").write_text(json.dumps({"extends": "a.json"}))

        # When/Then
        with pytest.raises(ConfigError, match="Circular"):
            AnalysisConfig.from_file(tmp_path / "a.json")

    def test_invalid_json_rejected(self, tmp_path):
        """Given a config file that is not JSON, should raise ConfigError."""
        # Given
        path = tmp_path / ".codeevolutionrc.json"
        path.write_text("{ nope")

        # When/Then
        with pytest.raises(ConfigError, match="Invalid JSON"):
            AnalysisConfig.from_file(path)

    def test_config_file_found_in_parent(self, tmp_path):
        """Given an rc file in an ancestor directory, should find it."""
        # Given
        rc = tmp_path / ".codeevolutionrc.json"
        rc.write_text("{}")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        # Then
        assert find_config_file(nested) == rc.resolve()

    def test_evolution_from_env(self, monkeypatch):
        """Given EVO_* variables, should override the base settings."""
        # Given
        monkeypatch.setenv("EVO_ENABLE_ALGORITHM", "true")
        monkeypatch.setenv("EVO_POPULATION_SIZE", "12")
        monkeypatch.setenv("EVO_SEED", "99")

        # When
        config = EvolutionConfig.from_env(EvolutionConfig(max_generations=4))

        # Then
        assert config.enabled
        assert config.population_size == 12
        assert config.max_generations == 4
        assert config.seed == 99

    def test_evolution_env_disabled_by_default(self, monkeypatch):
        """Given no EVO_* variables, the optimizer should stay off."""
        # Given
        monkeypatch.delenv("EVO_ENABLE_ALGORITHM", raising=False)

        # Then
        assert not EvolutionConfig.from_env().enabled

    @pytest.mark.parametrize("name,value", [
        ("EVO_MUTATION_RATE", "often"),
        ("EVO_CROSSOVER_RATE", "1.5"),
        ("EVO_POPULATION_SIZE", "0"),
    ])
    def test_invalid_env_rejected(self, monkeypatch, name, value):
        """Given a malformed or out-of-range EVO_* value, should raise ConfigError."""
        # Given
        monkeypatch.setenv(name, value)

        # When/Then
        with pytest.raises(ConfigError):
            EvolutionConfig.from_env()


class TestSummary:
    """Tests for run statistics."""

    def test_summarize_results(self):
        """Given results with one failure, should count issues of analyzed files only."""
        # When
        summary = summarize_results(make_results(), duration_ms=1500)

        # Then
        assert summary.files_analyzed == 1
        assert summary.files_failed == 1
        assert summary.total_issues == 2
        assert summary.total_solutions == 1
        assert summary.critical_count == 1
        assert summary.low_count == 1
        assert summary.by_detector == {"Memory Leak Detector": 1, "Inefficient Loop Detector": 1}
        assert summary.to_dict()["bySeverity"]["critical"] == 1

    def test_fail_on_threshold(self):
        """Given a critical issue, should exceed fail-on critical but not a missing threshold."""
        # Given
        results = make_results()

        # Then
        assert exceeds_fail_on(results, "critical")
        assert exceeds_fail_on(results, "low")
        assert not exceeds_fail_on(results, None)
        assert not exceeds_fail_on(results[1:], "low")

    def test_format_summary(self):
        """Given a summary, should render the counts as markdown."""
        # When
        text = format_summary(summarize_results(make_results(), duration_ms=1500))

        # Then
        assert "## Analysis Summary" in text
        assert "- Critical: 1" in text
        assert "Duration: 1.50s" in text


class TestReports:
    """Tests for text, JSON and SARIF output."""

    def test_text_report(self):
        """Given results, should list issues, solutions and failures."""
        # When
        text = format_text(make_results())

        # Then
        assert "src/app.js" in text
        assert "[CRITICAL] Timer Not Cleared (timer_leak)" in text
        assert "#1 class_timer_cleanup fitness=93.50 ~15min risk=low" in text
        assert "ERROR Parse error in src/broken.js" in text

    def test_text_report_empty(self):
        """Given no issues, should say so."""
        assert format_text([FileResult(file_path="a.js")]) == "No issues found."

    def test_json_report(self):
        """Given results and a summary, should produce camelCase JSON."""
        # Given
        results = make_results()

        # When
        data = json.loads(format_json(results, summarize_results(results)))

        # Then
        issue = data["files"][0]["results"][0]["issues"][0]
        assert issue["type"] == "timer_leak"
        assert issue["lineNumber"] == 4
        assert issue["solutions"][0]["estimatedImplementationMinutes"] == 15
        assert data["files"][1]["error"].startswith("Parse error")
        assert data["summary"]["totalIssues"] == 2

    def test_sarif_report(self):
        """Given results, should produce a SARIF 2.1.0 log with rules, levels and notifications."""
        # When
        log = json.loads(format_sarif(make_results()))

        # Then
        assert log["version"] == "2.1.0"
        run = log["runs"][0]
        assert run["tool"]["driver"]["name"] == "code-evolution"
        assert {r["id"] for r in run["tool"]["driver"]["rules"]} == {"timer_leak", "array_push_in_loop"}
        levels = {r["ruleId"]: r["level"] for r in run["results"]}
        assert levels == {"timer_leak": "error", "array_push_in_loop": "note"}
        assert run["results"][0]["locations"][0]["physicalLocation"]["region"]["startLine"] == 4
        assert run["results"][0]["properties"]["topSolution"] == "class_timer_cleanup"
        assert not run["invocations"][0]["executionSuccessful"]

    def test_unknown_format_rejected(self):
        """Given an unsupported format name, should raise ValueError."""
        with pytest.raises(ValueError):
            format_report([], "xml")


class TestProgressSinks:
    """Tests for progress sinks."""

    def test_recorder_collects_in_order(self):
        """Given events passed to the recorder, should keep them in arrival order."""
        # Given
        recorder = ProgressRecorder()
        first = ProgressEvent(ProgressEventType.START, "timer_leak", "Timer")
        second = ProgressEvent(ProgressEventType.COMPLETE, "timer_leak", "Timer")

        # When
        recorder(first)
        count = recorder.store(second)

        # Then
        assert count == 2
        assert recorder.values == [first, second]
        recorder.clear()
        assert len(recorder) == 0

    def test_queue_sink_accepts_events_from_threads(self):
        """Given an event sent from a worker thread, should deliver it on the event loop."""
        # Given
        event = ProgressEvent(ProgressEventType.PROGRESS, "timer_leak", "Timer", generation_index=0)

        async def scenario():
            sink = QueueProgressSink()
            await asyncio.to_thread(sink, event)
            return await asyncio.wait_for(sink.get(), timeout=5)

        # When
        received = asyncio.run(scenario())

        # Then
        assert received is event
        assert received.to_dict()["generation"] == 1


class TestInitCommand:
    """Tests for `code-evolution init`."""

    def test_creates_config(self, tmp_path):
        """Given an empty project, should write a default config file."""
        # When
        ok = init_repository(tmp_path)

        # Then
        assert ok
        config = AnalysisConfig.from_file(tmp_path / ".codeevolutionrc.json")
        assert config.fail_on == "critical"
        assert not config.evolution.enabled

    def test_keeps_existing_config(self, tmp_path):
        """Given an existing config, should leave it untouched."""
        # Given
        rc = tmp_path / ".codeevolutionrc.json"
        rc.write_text('{"severity": {"minReportLevel": "high"}}')

        # When
        init_repository(tmp_path)

        # Then
        assert json.loads(rc.read_text()) == {"severity": {"minReportLevel": "high"}}

    def test_workflow_requires_git(self, tmp_path):
        """Given --workflow outside a git repository, should fail."""
        assert not init_repository(tmp_path, with_workflow=True)

    def test_workflow_written(self, tmp_path):
        """Given --workflow in a git repository, should add the GitHub Actions workflow."""
        # Given
        (tmp_path / ".git").mkdir()

        # When
        ok = init_repository(tmp_path, with_workflow=True)

        # Then
        workflow = tmp_path / ".github" / "workflows" / "code-evolution.yml"
        assert ok
        assert "code-evolution analyze" in workflow.read_text()


class TestCommandLine:
    """Tests for `code-evolution analyze`."""

    def run_cli(self, monkeypatch, *args):
        monkeypatch.setattr(sys, "argv", ["code-evolution", *args])
        with pytest.raises(SystemExit) as info:
            main()
        return info.value.code

    def test_analyze_fails_on_critical(self, tmp_path, monkeypatch):
        """Given a critical issue and --fail-on critical, should exit 1 and write the report."""
        # Given
        monkeypatch.chdir(tmp_path)
        (tmp_path / "timer.js").write_text("setInterval(tick, 1000);\n")

        # When
        code = self.run_cli(
            monkeypatch, "analyze", "timer.js", "--format", "json", "-o", "report.json", "--fail-on", "critical"
        )

        # Then
        assert code == 1
        report = json.loads((tmp_path / "report.json").read_text())
        assert report["summary"]["bySeverity"]["critical"] == 1

    def test_analyze_clean_file_exits_zero(self, tmp_path, monkeypatch, capsys):
        """Given a clean file, should print the report and exit 0."""
        # Given
        monkeypatch.chdir(tmp_path)
        (tmp_path / "clean.js").write_text("export const add = (a, b) => a + b;\n")

        # When
        code = self.run_cli(monkeypatch, "analyze", "clean.js", "--fail-on", "low")

        # Then
        assert code == 0
        assert "Issues found: 0" in capsys.readouterr().out

    def test_invalid_config_exits_two(self, tmp_path, monkeypatch):
        """Given an invalid config file, should exit 2."""
        # Given
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".codeevolutionrc.json").write_text('{"output": {"format": "xml"}}')

        # When
        code = self.run_cli(monkeypatch, "analyze", ".")

        # Then
        assert code == 2
