"""Tests for parsing, scope/access resolution and per-file analysis."""

import subprocess
import sys
from pathlib import Path

import pytest

from code_evolution.analyzer import (
    DataAccessCatalog,
    Dialect,
    ScopeTree,
    SourceParseError,
    build_access_context,
    dialect_for,
    parse_code,
    parse_source,
)
from code_evolution.code_analyzer import (
    CodeAnalyzer,
    analyze_source_sync,
    collect_files,
    load_project_context,
    project_context_from_package_json,
)
from code_evolution.config import AnalysisConfig, EvolutionConfig
from code_evolution.generators import GeneratorRegistry
from code_evolution.models import Severity


LOOP_WITH_QUERY = """
async function attachOrders(users) {
  for (const u of users) {
    u.orders = await Order.findAll({ where: { userId: u.id } });
  }
}
"""


def identifiers(parsed, name):
    found = []
    stack = [parsed.root]
    while stack:
        node = stack.pop()
        if node.type == "identifier" and parsed.node_text(node) == name:
            found.append(node)
        stack.extend(node.children)
    return sorted(found, key=lambda n: n.start_byte)


class TestPackageImports:
    """Tests that every subpackage imports on its own."""

    @pytest.mark.parametrize("module", [
        "code_evolution.analyzer",
        "code_evolution.detectors",
        "code_evolution.generators",
        "code_evolution.optimizer",
        "code_evolution.tools",
        "code_evolution.code_analyzer",
        "code_evolution.main",
    ])
    def test_imports_in_fresh_interpreter(self, module):
        """Given a new interpreter, importing the module first should succeed."""
        # When
        completed = subprocess.run(
            [sys.executable, "-c", f"import {module}"],
            capture_output=True,
            text=True,
        )

        # Then
        assert completed.returncode == 0, completed.stderr


class TestParser:
    """Tests for grammar selection and parse errors."""

    @pytest.mark.parametrize("file_name,dialect", [
        ("app.js", Dialect.JAVASCRIPT),
        ("app.mjs", Dialect.JAVASCRIPT),
        ("App.jsx", Dialect.JAVASCRIPT),
        ("service.ts", Dialect.TYPESCRIPT),
        ("View.tsx", Dialect.TSX),
        ("<snippet>", Dialect.TSX),
    ])
    def test_dialect_from_extension(self, file_name, dialect):
        """Given a file name, should pick the matching grammar."""
        assert dialect_for(file_name) == dialect

    def test_typescript_annotations_parse(self):
        """Given TypeScript syntax in a .ts file, should parse without errors."""
        # When
        parsed = parse_source("const limit: number = 10;\nexport type Row = { id: string };\n", "rows.ts")

        # Then
        assert not parsed.has_errors

    def test_syntax_error_raises_with_location(self):
        """Given broken code, should raise SourceParseError naming the file."""
        # When/Then
        with pytest.raises(SourceParseError) as info:
            parse_source("function broken( {\n", "broken.js")
        assert info.value.file_identifier == "broken.js"
        assert info.value.line >= 1


class TestScopeTree:
    """Tests for lexical resolution."""

    def test_inner_declaration_shadows_outer(self):
        """Given a shadowing const, the inner reference should resolve to the inner binding."""
        # Given
        parsed = parse_code("const a = 1;\nfunction f() {\n  const a = 2;\n  return a;\n}\n")
        scopes = ScopeTree(parsed)

        # When
        reference = identifiers(parsed, "a")[-1]
        binding = scopes.resolve(reference)

        # Then
        assert binding is not None
        assert binding.node.start_point[0] == 2

    def test_var_is_function_scoped(self):
        """Given a var declared in a nested block, a later reference in the function should resolve to it."""
        # Given
        parsed = parse_code("function f(x) {\n  if (x) {\n    var v = 1;\n  }\n  return v;\n}\n")
        scopes = ScopeTree(parsed)

        # When
        binding = scopes.resolve(identifiers(parsed, "v")[-1])

        # Then
        assert binding is not None
        assert binding.kind == "var"

    def test_references_found(self):
        """Given a declared variable used twice, should list the declaration and both uses."""
        # Given
        parsed = parse_code("let count = 0;\ncount += 1;\nconsole.log(count);\n")
        scopes = ScopeTree(parsed)
        binding = scopes.resolve(identifiers(parsed, "count")[0])

        # When
        references = scopes.references(binding)

        # Then
        assert len(references) == 3


class TestAccessContext:
    """Tests for import-based library resolution."""

    def test_es_import(self):
        """Given named imports from sequelize, should map each local name to the family."""
        # Given
        parsed = parse_code("import { Model, Op as Operators } from 'sequelize';\n")

        # When
        access = build_access_context(parsed)

        # Then
        assert access.families == frozenset({"sequelize"})
        assert access.symbols == {"Model": "sequelize", "Operators": "sequelize"}

    def test_required_prisma_client(self):
        """Given a required PrismaClient instance, should record the client binding."""
        # Given
        parsed = parse_code(
            "const { PrismaClient } = require('@prisma/client');\nconst db = new PrismaClient();\n"
        )

        # When
        access = build_access_context(parsed)

        # Then
        assert access.families == frozenset({"prisma"})
        assert access.client_binding == "db"

    def test_unrelated_imports_ignored(self):
        """Given only non data-access imports, should produce an empty context."""
        # When
        access = build_access_context(parse_code("import express from 'express';\n"))

        # Then
        assert not access.has_families

    def test_custom_patterns_extend_catalog(self):
        """Given a project pattern, should treat its methods as data access of that family."""
        # When
        catalog = DataAccessCatalog.with_patterns([("Raw SQL", ["fetchRows"])])

        # Then
        assert "fetchRows" in catalog.methods
        assert catalog.heuristics["fetchRows"] == "raw_sql"
        assert "findAll" in catalog.methods


class TestCodeAnalyzer:
    """Tests for the analyze_source entry point."""

    def test_results_in_detector_order(self):
        """Given any source, should return one result per enabled detector in a fixed order."""
        # When
        results = analyze_source_sync(LOOP_WITH_QUERY, "users.js")

        # Then
        assert [r.detector_name for r in results] == [
            "N+1 Query Detector",
            "Inefficient Loop Detector",
            "Memory Leak Detector",
            "Large Payload Detector",
        ]
        assert len(results[0].issues) == 1
        assert results[0].issues[0].solutions == []

    def test_solutions_match_generator_when_optimizer_off(self):
        """Given solutions requested with the optimizer disabled, should attach the generator output as is."""
        # When
        results = analyze_source_sync(LOOP_WITH_QUERY, "users.js", generate_solutions=True)

        # Then
        issue = results[0].issues[0]
        expected = GeneratorRegistry().generate_solutions(issue)
        assert [(s.id, s.rank, s.fitness_score) for s in issue.solutions] == [
            (s.id, s.rank, s.fitness_score) for s in expected
        ]
        assert issue.solutions[0].rank == 1

    def test_min_severity_filters_issues(self):
        """Given a high minimum severity, should drop medium issues."""
        # Given
        config = AnalysisConfig(min_severity="high")

        # When
        results = CodeAnalyzer(config).analyze_source_sync(LOOP_WITH_QUERY, "users.js")

        # Then
        issues = [i for r in results for i in r.issues]
        assert issues
        assert all(i.severity.rank >= Severity.HIGH.rank for i in issues)
        assert results[0].issues == []

    def test_disabled_detector_skipped(self):
        """Given a detector turned off, should not run it."""
        # Given
        config = AnalysisConfig()
        config.detectors["memory-leak"] = False

        # When
        results = CodeAnalyzer(config).analyze_source_sync("setInterval(tick, 1000);\n", "timer.js")

        # Then
        assert "Memory Leak Detector" not in [r.detector_name for r in results]
        assert len(results) == 3

    def test_custom_data_access_method(self):
        """Given a configured dbPattern, should detect its method inside loops."""
        # Given
        config = AnalysisConfig.from_dict({"dbPatterns": [{"orm": "prisma", "methods": ["fetchRows"]}]})
        source = "async function f(ids) {\n  for (const id of ids) {\n    await repo.fetchRows(id);\n  }\n}\n"

        # When
        results = CodeAnalyzer(config).analyze_source_sync(source, "repo.js")

        # Then
        assert len(results[0].issues) == 1
        assert results[0].issues[0].metric("accessFamilies") == ["Prisma"]

    def test_parse_error_propagates(self):
        """Given a syntax error, analyze_source should raise SourceParseError."""
        with pytest.raises(SourceParseError):
            analyze_source_sync("const = ;\n", "bad.js")

    def test_evolution_enabled_attaches_ranked_solutions(self):
        """Given the optimizer turned on, should still attach densely ranked solutions."""
        # Given
        config = AnalysisConfig(generate_solutions=True)
        config.evolution = EvolutionConfig(enabled=True, population_size=4, max_generations=2, seed=11)

        # When
        results = CodeAnalyzer(config).analyze_source_sync(LOOP_WITH_QUERY, "users.js")

        # Then
        issue = results[0].issues[0]
        assert issue.solutions
        assert [s.rank for s in issue.solutions] == list(range(1, len(issue.solutions) + 1))
        assert all(s.issue_id == issue.id for s in issue.solutions)

    def test_batch_isolates_failures(self, tmp_path):
        """Given one good and one broken file, should analyze the good one and report the other."""
        # Given
        good = tmp_path / "good.js"
        good.write_text("setInterval(tick, 1000);\n")
        bad = tmp_path / "bad.js"
        bad.write_text("function (\n")

        # When
        results = CodeAnalyzer().analyze_files_sync([good, bad])

        # Then
        assert [r.file_path for r in results] == [str(good), str(bad)]
        assert not results[0].failed
        assert results[0].issues[0].type == "timer_leak"
        assert results[1].failed
        assert results[1].error.startswith(f"Parse error in {bad}")

    def test_batch_uses_supplied_sources(self):
        """Given pre-fetched sources, should not read from disk."""
        # Given
        path = Path("remote/timer.js")
        sources = {str(path): "setInterval(tick, 1000);\n"}

        # When
        results = CodeAnalyzer().analyze_files_sync([path], sources=sources)

        # Then
        assert not results[0].failed
        assert results[0].issues[0].type == "timer_leak"

    def test_missing_file_reported(self, tmp_path):
        """Given a path that does not exist, should report an error instead of raising."""
        # When
        results = CodeAnalyzer().analyze_files_sync([tmp_path / "missing.js"])

        # Then
        assert results[0].failed
        assert results[0].error.startswith("FileNotFoundError")


class TestFileDiscovery:
    """Tests for collect_files and project context."""

    def test_collect_source_files(self, tmp_path):
        """Given a tree with sources, docs and node_modules, should return only project sources."""
        # Given
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "a.js").write_text("")
        (tmp_path / "src" / "b.ts").write_text("")
        (tmp_path / "src" / "notes.md").write_text("")
        (tmp_path / "node_modules" / "lib").mkdir(parents=True)
        (tmp_path / "node_modules" / "lib" / "index.js").write_text("")

        # When
        files = collect_files([str(tmp_path)])

        # Then
        assert [f.name for f in files] == ["a.js", "b.ts"]

    def test_collect_with_custom_ignore(self, tmp_path):
        """Given an extra ignore pattern, should skip matching files."""
        # Given
        (tmp_path / "legacy").mkdir()
        (tmp_path / "legacy" / "old.js").write_text("")
        (tmp_path / "app.js").write_text("")

        # When
        files = collect_files([str(tmp_path)], ["**/legacy/**"])

        # Then
        assert [f.name for f in files] == ["app.js"]

    def test_package_json_dependencies(self):
        """Given package.json text, should collect dependencies and known patterns."""
        # When
        project = project_context_from_package_json(
            '{"dependencies": {"dataloader": "^2.0.0"}, "devDependencies": {"jest": "^29"}}'
        )

        # Then
        assert project.dependencies == {"dataloader", "jest"}
        assert project.existing_patterns == {"dataloader"}

    def test_package_json_must_be_object(self):
        """Given a JSON array, should raise ValueError."""
        with pytest.raises(ValueError):
            project_context_from_package_json("[]")

    def test_load_project_context_from_parent(self, tmp_path):
        """Given package.json in a parent directory, should find it."""
        # Given
        (tmp_path / "package.json").write_text('{"dependencies": {"compression": "1.7.4"}}')
        nested = tmp_path / "src" / "api"
        nested.mkdir(parents=True)

        # When
        project = load_project_context(nested)

        # Then
        assert "compression" in project.dependencies
        assert "response_compression" in project.existing_patterns

    def test_unreadable_package_json_ignored(self, tmp_path):
        """Given a malformed package.json, should return an empty context."""
        # Given
        (tmp_path / "package.json").write_text("{ not json")

        # When
        project = load_project_context(tmp_path)

        # Then
        assert project.dependencies == set()
