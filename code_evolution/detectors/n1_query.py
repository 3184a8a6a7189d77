"""N+1 query detector."""

from typing import Iterator, List, Optional

from tree_sitter import Node

from ..analyzer.access_context import DataAccessCatalog, display_name
from ..analyzer.nodes import FUNCTION_TYPES, callee, line_of, method_name, walk
from ..analyzer.parser import ParsedSource
from ..models import AnalysisContext, DatabaseCall, DetectorResult, Issue, Loop, Severity
from .base import Detector, create_impact, find_loops, loop_label


SEVERITY_SCORES = {
    Severity.CRITICAL: 9,
    Severity.HIGH: 7,
    Severity.MEDIUM: 5,
}


def severity_for_calls(count: int) -> Severity:
    """More queries per iteration never lowers severity."""
    if count >= 3:
        return Severity.CRITICAL
    if count == 2:
        return Severity.HIGH
    return Severity.MEDIUM


class N1QueryDetector(Detector):
    """Finds data-access calls issued once per loop iteration."""

    name = "N+1 Query Detector"

    def __init__(self, catalog: Optional[DataAccessCatalog] = None):
        self.catalog = catalog or DataAccessCatalog()

    def detect(self, tree: ParsedSource, context: AnalysisContext) -> DetectorResult:
        issues: List[Issue] = []
        for loop in find_loops(tree, context):
            calls = self.find_database_calls(loop, tree, context)
            if calls:
                issues.append(self._create_issue(loop, calls, context))
        return DetectorResult(detector_name=self.name, issues=issues)

    def find_database_calls(
        self,
        loop: Loop,
        tree: ParsedSource,
        context: AnalysisContext,
    ) -> List[DatabaseCall]:
        """Resolved data-access calls executed per iteration of `loop`."""
        calls: List[DatabaseCall] = []
        for node in _per_iteration_nodes(loop):
            if node.type != "call_expression":
                continue
            target = callee(node)
            if target is None or target.type != "member_expression":
                continue
            method = method_name(node, tree.node_text)
            if method is None or method not in self.catalog.methods:
                continue
            family = self.catalog.resolve(node, method, tree, context.access)
            if family is None:
                continue
            calls.append(DatabaseCall(
                method_name=method,
                resolved_family=family,
                line=line_of(node),
                snippet=tree.node_text(node),
            ))
        return calls

    def _create_issue(self, loop: Loop, calls: List[DatabaseCall], context: AnalysisContext) -> Issue:
        count = len(calls)
        severity = severity_for_calls(count)
        call_list = ", ".join(
            f"{display_name(c.resolved_family)}.{c.method_name}()" for c in calls
        )
        families = sorted({display_name(c.resolved_family) for c in calls})

        description = (
            f"Found {count} database {'query' if count == 1 else 'queries'} ({call_list}) "
            f"inside a {loop_label(loop)} loop. This creates an N+1 query problem where "
            f"the database is queried once per iteration. Consider using eager loading "
            f"or batch queries instead."
        )
        impact = create_impact(
            SEVERITY_SCORES[severity],
            f"{count} queries for 100 items vs 1 optimal query",
            85,
            {
                "queriesIfN100": count * 100 + 1,
                "queriesOptimal": 1,
                "performanceGain": f"{count}x slower",
                "queryCount": count,
                "accessFamilies": families,
            },
        )
        return self.create_issue(
            context,
            issue_type="n_plus_1_query",
            severity=severity,
            node=loop.node,
            title="N+1 Query Detected",
            description=description,
            impact=impact,
        )


def _per_iteration_nodes(loop: Loop) -> Iterator[Node]:
    """Nodes of a loop body, skipping function bodies that are not run inline."""
    for body in loop.bodies:
        yield from walk(body, lambda n: n.type not in FUNCTION_TYPES or _is_awaited_inline(n))


def _is_awaited_inline(function: Node) -> bool:
    """`await (async () => { ... })()`."""
    parent = function.parent
    while parent is not None and parent.type == "parenthesized_expression":
        parent = parent.parent
    if parent is None or parent.type != "call_expression":
        return False
    outer = parent.parent
    while outer is not None and outer.type == "parenthesized_expression":
        outer = outer.parent
    return outer is not None and outer.type == "await_expression"
