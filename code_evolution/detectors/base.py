"""Detector interface and helpers shared by all detectors."""

import hashlib
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional

from tree_sitter import Node

from ..analyzer.nodes import (
    FUNCTION_TYPES,
    ITERATION_METHODS,
    STATEMENT_LOOP_TYPES,
    call_arguments,
    callee,
    line_of,
    loop_kind,
    method_name,
    walk,
)
from ..analyzer.parser import ParsedSource
from ..models import (
    AnalysisContext,
    DetectorResult,
    EstimatedImpact,
    Issue,
    Loop,
    LoopKind,
    Severity,
)


class Detector(ABC):
    """
    A pure pass over one parsed file.

    Detectors keep no state between calls; everything they read comes from
    the tree and the AnalysisContext.
    """

    name: str = "Detector"

    @abstractmethod
    def detect(self, tree: ParsedSource, context: AnalysisContext) -> DetectorResult:
        """Return every issue this detector finds in `tree`."""

    def create_issue(
        self,
        context: AnalysisContext,
        issue_type: str,
        severity: Severity,
        node: Node,
        title: str,
        description: str,
        before_snippet: Optional[str] = None,
        impact: Optional[EstimatedImpact] = None,
        after_snippet: Optional[str] = None,
    ) -> Issue:
        line = line_of(node)
        return Issue(
            id=issue_id(context.file_identifier, self.name, issue_type, line, node.start_point[1]),
            type=issue_type,
            severity=severity,
            file_path=context.file_identifier,
            line_number=line,
            title=title,
            description=description,
            before_snippet=before_snippet if before_snippet is not None else context.parsed.node_text(node),
            after_snippet=after_snippet,
            estimated_impact=impact,
        )


def issue_id(file_identifier: str, detector: str, issue_type: str, line: int, column: int) -> str:
    """Deterministic issue id for one finding."""
    digest = hashlib.sha1(
        f"{file_identifier}|{detector}|{issue_type}|{line}|{column}".encode("utf-8")
    ).hexdigest()
    return f"{issue_type}-{digest[:12]}"


def create_impact(
    severity_score: int,
    description: str,
    confidence: int,
    metrics: Optional[Dict[str, Any]] = None,
) -> EstimatedImpact:
    return EstimatedImpact(
        severity_score=max(0, min(10, severity_score)),
        description=description,
        confidence_score=max(0, min(100, confidence)),
        metrics=dict(metrics or {}),
    )


def callback_arguments(call: Node) -> List[Node]:
    """Function-valued arguments of a call."""
    return [a for a in call_arguments(call) if a.type in FUNCTION_TYPES]


def find_loops(tree: ParsedSource, context: AnalysisContext) -> Iterator[Loop]:
    """
    Every loop in source order: statement loops and iteration-method calls
    (`items.forEach(cb)`, `items.map(cb)`, ...) with a callback argument.
    """
    for node in walk(tree.root):
        kind = loop_kind(node) if node.type in STATEMENT_LOOP_TYPES else None
        if kind is not None:
            body = node.child_by_field_name("body")
            yield Loop(
                kind=kind,
                node=node,
                line=line_of(node),
                scope=context.scopes.scope_at(node) if context.scopes is not None else None,
                bodies=[body] if body is not None else [],
            )
        elif node.type == "call_expression":
            target = callee(node)
            if target is None or target.type != "member_expression":
                continue
            name = method_name(node, tree.node_text)
            callbacks = callback_arguments(node)
            if name in ITERATION_METHODS and callbacks:
                yield Loop(
                    kind=LoopKind.ITERATION_METHOD,
                    node=node,
                    line=line_of(node),
                    scope=context.scopes.scope_at(callbacks[0]) if context.scopes is not None else None,
                    bodies=callbacks,
                    method_name=name,
                )


def loop_label(loop: Loop) -> str:
    """Human label: `for-of`, `while`, `forEach`, ..."""
    if loop.kind is LoopKind.ITERATION_METHOD and loop.method_name:
        return loop.method_name
    return loop.kind.value


def enclosing_loop(node: Node, stop_at_functions: bool = True) -> Optional[Node]:
    """Nearest statement loop around a node."""
    current = node.parent
    while current is not None:
        if current.type in STATEMENT_LOOP_TYPES:
            return current
        if stop_at_functions and current.type in FUNCTION_TYPES:
            return None
        current = current.parent
    return None
