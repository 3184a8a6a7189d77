"""Per-file analysis: parse, detect, and attach ranked solutions."""

import asyncio
import fnmatch
import json
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .config import AnalysisConfig, DEFAULT_IGNORE
from .detectors import (
    Detector,
    InefficientLoopDetector,
    LargePayloadDetector,
    MemoryLeakDetector,
    N1QueryDetector,
)
from .generators import GeneratorRegistry
from .models import AnalysisContext, DetectorResult, FileResult, Issue, ProgressEvent, ProjectContext
from .optimizer import EvolutionaryEngine
from .utils.logging import get_logger
from .utils.metrics import meets_severity
from .analyzer.access_context import DataAccessCatalog, build_access_context
from .analyzer.parser import SourceParseError, parse_source
from .analyzer.scope import ScopeTree

logger = get_logger("analyzer")

ProgressSink = Callable[[ProgressEvent], None]

SOURCE_EXTENSIONS = frozenset({".js", ".ts", ".jsx", ".tsx", ".mjs", ".cjs"})

# package.json dependency -> solution type the project already uses
PACKAGE_PATTERNS: Dict[str, str] = {
    "dataloader": "dataloader",
    "p-limit": "batched_concurrency",
    "compression": "response_compression",
    "graphql": "graphql_fields",
}


def build_detectors(config: AnalysisConfig, catalog: Optional[DataAccessCatalog] = None) -> List[Detector]:
    """Enabled detectors in report order."""
    catalog = catalog or DataAccessCatalog()
    factories: Dict[str, Callable[[], Detector]] = {
        "n1-query": lambda: N1QueryDetector(catalog),
        "inefficient-loop": InefficientLoopDetector,
        "memory-leak": MemoryLeakDetector,
        "large-payload": lambda: LargePayloadDetector(catalog),
    }
    return [factory() for key, factory in factories.items() if config.is_detector_enabled(key)]


def build_context(source_text: str, file_identifier: str) -> AnalysisContext:
    """
    Parse a file and build the read-only context every detector shares.

    Raises:
        SourceParseError: If the source has a syntax error
    """
    parsed = parse_source(source_text, file_identifier)
    return AnalysisContext(
        source_text=source_text,
        file_identifier=file_identifier,
        parsed=parsed,
        scopes=ScopeTree(parsed),
        access=build_access_context(parsed),
    )


class CodeAnalyzer:
    """
    Runs the detectors over one source and attaches solutions to each issue.

    The detector list, generator registry and optimizer are built once and
    only read afterwards, so one analyzer can serve many files concurrently.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        project: Optional[ProjectContext] = None,
        registry: Optional[GeneratorRegistry] = None,
        engine: Optional[EvolutionaryEngine] = None,
    ):
        self.config = config or AnalysisConfig()
        self.project = project or ProjectContext()
        self.catalog = DataAccessCatalog.with_patterns(
            (p.family, p.methods) for p in self.config.data_access_patterns
        )
        self.detectors = build_detectors(self.config, self.catalog)
        self.registry = registry or GeneratorRegistry()
        self.engine = engine or EvolutionaryEngine(self.config.evolution, self.registry.calculator)

    def detect(self, source_text: str, file_identifier: str) -> List[DetectorResult]:
        """
        Run every enabled detector over one source.

        Raises:
            SourceParseError: If the source has a syntax error
        """
        context = build_context(source_text, file_identifier)
        results = []
        for detector in self.detectors:
            result = detector.detect(context.parsed, context)
            result.issues = [i for i in result.issues if meets_severity(i, self.config.min_severity)]
            results.append(result)
        return results

    async def attach_solutions(
        self,
        results: List[DetectorResult],
        progress_sink: Optional[ProgressSink] = None,
    ) -> None:
        """Fill `issue.solutions` for every issue, evolving them when enabled."""
        issues = [issue for result in results for issue in result.issues]
        if not issues:
            return

        if not self.engine.enabled:
            for issue in issues:
                issue.solutions = self.registry.generate_solutions(issue, self.project)
            return

        semaphore = asyncio.Semaphore(self.config.evolution.max_concurrent_runs)

        async def evolve(issue: Issue) -> None:
            async with semaphore:
                issue.solutions = await asyncio.to_thread(
                    self.engine.evolve, issue, self.registry, self.project, progress_sink
                )

        await asyncio.gather(*(evolve(issue) for issue in issues))

    async def analyze_source(
        self,
        source_text: str,
        file_identifier: str,
        generate_solutions: Optional[bool] = None,
        progress_sink: Optional[ProgressSink] = None,
    ) -> List[DetectorResult]:
        """
        Analyze one source text.

        Args:
            source_text: Program text
            file_identifier: File name used for grammar choice, ids and reports
            generate_solutions: Attach solutions (defaults to the config setting)
            progress_sink: Receives optimizer progress events

        Returns:
            One DetectorResult per enabled detector, in detector order

        Raises:
            SourceParseError: If the source has a syntax error
        """
        results = self.detect(source_text, file_identifier)
        if generate_solutions is None:
            generate_solutions = self.config.generate_solutions
        if generate_solutions:
            await self.attach_solutions(results, progress_sink)
        return results

    def analyze_source_sync(
        self,
        source_text: str,
        file_identifier: str,
        generate_solutions: Optional[bool] = None,
        progress_sink: Optional[ProgressSink] = None,
    ) -> List[DetectorResult]:
        """Synchronous wrapper for analyze_source."""
        return asyncio.run(self.analyze_source(source_text, file_identifier, generate_solutions, progress_sink))

    async def analyze_file(
        self,
        path: Path,
        progress_sink: Optional[ProgressSink] = None,
        source_text: Optional[str] = None,
    ) -> FileResult:
        """Analyze one file on disk (or supplied text) into a FileResult."""
        started = time.monotonic()
        if source_text is None:
            source_text = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
        results = await self.analyze_source(source_text, str(path), progress_sink=progress_sink)
        return FileResult(
            file_path=str(path),
            results=results,
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    async def analyze_files(
        self,
        paths: List[Path],
        progress_sink: Optional[ProgressSink] = None,
        sources: Optional[Dict[str, str]] = None,
    ) -> List[FileResult]:
        """
        Analyze many files with at most `config.concurrency` in flight.

        A file that cannot be read or parsed yields a FileResult with
        `error` set; the other files are unaffected.

        Args:
            paths: Files to analyze
            progress_sink: Receives optimizer progress events
            sources: Already-fetched text by path (skips reading from disk)

        Returns:
            FileResult per path, in input order
        """
        if not paths:
            return []

        semaphore = asyncio.Semaphore(self.config.concurrency)
        sources = sources or {}

        async def bounded(path: Path) -> FileResult:
            async with semaphore:
                return await self.analyze_file(path, progress_sink, sources.get(str(path)))

        logger.info(f"Analyzing {len(paths)} file(s), concurrency={self.config.concurrency}")
        outcomes = await asyncio.gather(*(bounded(p) for p in paths), return_exceptions=True)

        file_results = []
        for path, outcome in zip(paths, outcomes):
            if isinstance(outcome, Exception):
                file_results.append(FileResult(file_path=str(path), error=_describe_error(outcome)))
                logger.warning(f"Failed to analyze {path}: {_describe_error(outcome)}")
            else:
                file_results.append(outcome)
        return file_results

    def analyze_files_sync(
        self,
        paths: List[Path],
        progress_sink: Optional[ProgressSink] = None,
        sources: Optional[Dict[str, str]] = None,
    ) -> List[FileResult]:
        """Synchronous wrapper for analyze_files."""
        return asyncio.run(self.analyze_files(paths, progress_sink, sources))


def _describe_error(error: Exception) -> str:
    if isinstance(error, SourceParseError):
        return f"Parse error in {error.file_identifier}: {error.message}"
    return f"{type(error).__name__}: {error}"


async def analyze_source(
    source_text: str,
    file_identifier: str,
    generate_solutions: bool = False,
    progress_sink: Optional[ProgressSink] = None,
    config: Optional[AnalysisConfig] = None,
) -> List[DetectorResult]:
    """Analyze one source text with a fresh CodeAnalyzer."""
    analyzer = CodeAnalyzer(config)
    return await analyzer.analyze_source(source_text, file_identifier, generate_solutions, progress_sink)


def analyze_source_sync(
    source_text: str,
    file_identifier: str,
    generate_solutions: bool = False,
    progress_sink: Optional[ProgressSink] = None,
    config: Optional[AnalysisConfig] = None,
) -> List[DetectorResult]:
    """Synchronous wrapper for analyze_source."""
    return asyncio.run(analyze_source(source_text, file_identifier, generate_solutions, progress_sink, config))


async def analyze_files(
    paths: List[Path],
    config: Optional[AnalysisConfig] = None,
    project: Optional[ProjectContext] = None,
    progress_sink: Optional[ProgressSink] = None,
) -> List[FileResult]:
    """Analyze files from disk with a fresh CodeAnalyzer."""
    analyzer = CodeAnalyzer(config, project)
    return await analyzer.analyze_files(paths, progress_sink)


def is_ignored(path: Path, ignore: Iterable[str]) -> bool:
    posix = Path(path).as_posix()
    return any(
        fnmatch.fnmatch(posix, pattern) or fnmatch.fnmatch("/" + posix, pattern)
        for pattern in ignore
    )


def collect_files(patterns: Iterable[str], ignore: Optional[Iterable[str]] = None) -> List[Path]:
    """
    Expand files, directories and glob patterns into source files.

    Args:
        patterns: Paths or glob patterns
        ignore: Glob patterns to skip (node_modules, dist, build, .git by default)

    Returns:
        Sorted, de-duplicated source file paths
    """
    ignore = list(DEFAULT_IGNORE if ignore is None else ignore)
    found = set()
    for pattern in patterns:
        path = Path(pattern)
        if path.is_file():
            candidates = [path]
        elif path.is_dir():
            candidates = [p for p in path.rglob("*") if p.is_file()]
        else:
            candidates = [p for p in Path().glob(pattern) if p.is_file()]
        for candidate in candidates:
            if candidate.suffix.lower() in SOURCE_EXTENSIONS and not is_ignored(candidate, ignore):
                found.add(candidate)
    return sorted(found)


def find_package_json(start_dir: Path) -> Optional[Path]:
    current = Path(start_dir).resolve()
    while True:
        candidate = current / "package.json"
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        current = current.parent


def load_project_context(start_dir: Optional[Path] = None) -> ProjectContext:
    """
    Read dependencies from the nearest package.json.

    Returns an empty ProjectContext when there is none or it is unreadable.
    """
    path = find_package_json(start_dir or Path.cwd())
    if path is None:
        return ProjectContext()
    try:
        return project_context_from_package_json(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable {path}: {e}")
        return ProjectContext()


def project_context_from_package_json(text: str) -> ProjectContext:
    """
    Dependencies and already-used solution patterns from package.json text.

    Raises:
        ValueError: If the text is not a JSON object
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("package.json must contain a JSON object")

    dependencies = set()
    for section in ("dependencies", "devDependencies", "peerDependencies"):
        dependencies.update((data.get(section) or {}).keys())
    patterns = {PACKAGE_PATTERNS[d] for d in dependencies if d in PACKAGE_PATTERNS}
    return ProjectContext(existing_patterns=patterns, dependencies=dependencies)
