"""Large payload detector: unbounded queries and responses."""

from typing import List, Optional, Set, Tuple

from tree_sitter import Node

from ..analyzer.access_context import DataAccessCatalog
from ..analyzer.nodes import (
    FUNCTION_TYPES,
    MEMBER_TYPES,
    callee,
    call_arguments,
    enclosing_function_or_program,
    method_name,
    object_keys,
    root_identifier,
    unwrap,
    walk,
    walk_same_function,
)
from ..analyzer.parser import ParsedSource
from ..models import AnalysisContext, DetectorResult, Issue, Severity
from .base import Detector, create_impact


RESPONSE_METHODS = frozenset({"json", "send"})
RESPONSE_RECEIVERS = frozenset({"res", "response", "reply", "resp"})
SELECT_ALL_METHODS = frozenset({"findAll", "findMany", "find", "findAndCountAll"})
RETURN_QUERY_METHODS = frozenset({"findAll", "findMany"})

FIELD_SELECTION_KEYS = frozenset({"attributes", "select", "projection", "fields"})
LIMIT_KEYS = frozenset({"limit", "take", "first", "perPage", "per_page"})
FIELD_SELECTION_CHAIN = frozenset({"select", "attributes", "projection"})
LIMIT_CHAIN = frozenset({"limit", "take", "paginate", "first"})


class LargePayloadDetector(Detector):
    """Finds responses and queries that ship entire tables."""

    name = "Large Payload Detector"

    def __init__(self, catalog: Optional[DataAccessCatalog] = None):
        self.catalog = catalog or DataAccessCatalog()

    def detect(self, tree: ParsedSource, context: AnalysisContext) -> DetectorResult:
        issues: List[Issue] = []
        for node in walk(tree.root):
            if node.type == "call_expression":
                issue = self._check_response(node, tree, context)
                if issue is not None:
                    issues.append(issue)
                issue = self._check_select_all(node, tree, context)
                if issue is not None:
                    issues.append(issue)
            elif node.type == "return_statement":
                issue = self._check_return(node, tree, context)
                if issue is not None:
                    issues.append(issue)
        return DetectorResult(detector_name=self.name, issues=issues)

    def _check_response(self, call: Node, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        if method_name(call, tree.node_text) not in RESPONSE_METHODS:
            return None
        target = callee(call)
        if target is None or target.type != "member_expression":
            return None
        if root_identifier(target, tree.node_text) not in RESPONSE_RECEIVERS:
            return None

        scope = enclosing_function_or_program(call)
        if not self._issues_query(scope, tree, context):
            return None

        has_fields, has_limit = _options_in(scope, tree)
        missing = _missing_optimizations(has_fields, has_limit)
        if not missing:
            return None

        return self.create_issue(
            context,
            issue_type="large_api_payload",
            severity=Severity.HIGH,
            node=call,
            title="Large API Response Payload",
            description=(
                f"API endpoint returns data without {' or '.join(missing)}. This may result "
                f"in large payloads and slow response times."
            ),
            impact=create_impact(
                7,
                "Potentially large response payload",
                70,
                {"missingOptimizations": missing},
            ),
        )

    def _check_select_all(self, call: Node, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        method = method_name(call, tree.node_text)
        if method not in SELECT_ALL_METHODS:
            return None
        target = callee(call)
        if target is None or target.type not in MEMBER_TYPES:
            return None
        args = call_arguments(call)
        # arr.find(x => ...) and arr.find(isActive) scan an array
        if args and _is_function_value(args[0], context):
            return None
        if self.catalog.resolve(call, method, tree, context.access) is None:
            return None

        has_fields, has_limit = _query_options(call, tree)
        if has_fields and has_limit:
            return None
        missing = _missing_optimizations(has_fields, has_limit)

        return self.create_issue(
            context,
            issue_type="select_all_query",
            severity=Severity.MEDIUM,
            node=call,
            title="SELECT * Query Without Limits",
            description=(
                f"Query {method}() fetches all fields and rows without {' or '.join(missing)}. "
                f"Select only the required fields and add pagination."
            ),
            impact=create_impact(
                5,
                "Unnecessary data transfer from database",
                75,
                {"missingOptimizations": missing, "method": method},
            ),
        )

    def _check_return(self, node: Node, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        values = [c for c in node.named_children if c.type != "comment"]
        if not values:
            return None
        value = unwrap(values[0])
        if value is None or value.type != "call_expression":
            return None
        method = method_name(value, tree.node_text)
        if method not in RETURN_QUERY_METHODS:
            return None
        _, has_limit = _query_options(value, tree)
        if has_limit:
            return None

        return self.create_issue(
            context,
            issue_type="large_return_payload",
            severity=Severity.HIGH,
            node=node,
            title="Unlimited Query Result Returned",
            description=(
                f"Returning the result of {method}() without a limit forwards every matching "
                f"row to the caller. Add pagination to bound the payload."
            ),
            impact=create_impact(
                7,
                "Entire table may be returned",
                80,
                {"missingOptimizations": ["pagination"], "method": method},
            ),
        )

    def _issues_query(self, scope: Node, tree: ParsedSource, context: AnalysisContext) -> bool:
        for node in walk_same_function(scope):
            if node.type != "call_expression":
                continue
            target = callee(node)
            if target is None or target.type != "member_expression":
                continue
            method = method_name(node, tree.node_text)
            if method in self.catalog.methods and self.catalog.resolve(node, method, tree, context.access):
                return True
        return False


def _is_function_value(node: Node, context: AnalysisContext) -> bool:
    """A function literal, or an identifier bound to a function in this file."""
    node = unwrap(node)
    if node is None:
        return False
    if node.type in FUNCTION_TYPES:
        return True
    if node.type != "identifier" or context.scopes is None:
        return False
    binding = context.scopes.resolve(node)
    if binding is None:
        return False
    if binding.kind == "function":
        return True
    init = unwrap(binding.init)
    return init is not None and init.type in FUNCTION_TYPES

def _missing_optimizations(has_fields: bool, has_limit: bool) -> List[str]:
    missing = []
    if not has_fields:
        missing.append("field selection")
    if not has_limit:
        missing.append("pagination")
    return missing


def _options_in(scope: Node, tree: ParsedSource) -> Tuple[bool, bool]:
    """Whether any object literal / chained call in a function selects fields or limits rows."""
    keys: Set[str] = set()
    chained: Set[str] = set()
    for node in walk(scope):
        if node.type == "object":
            keys.update(object_keys(node, tree.node_text))
        elif node.type == "call_expression":
            name = method_name(node, tree.node_text)
            if name is not None:
                chained.add(name)
    has_fields = bool(keys & FIELD_SELECTION_KEYS) or bool(chained & FIELD_SELECTION_CHAIN)
    has_limit = bool(keys & LIMIT_KEYS) or bool(chained & LIMIT_CHAIN)
    return has_fields, has_limit


def _query_options(call: Node, tree: ParsedSource) -> Tuple[bool, bool]:
    """Field selection / row limit set on one query, in its options or by chaining."""
    keys: Set[str] = set()
    for arg in call_arguments(call)[:2]:
        if arg.type == "object":
            keys.update(object_keys(arg, tree.node_text))

    # Model.find(filter).select('a b').limit(10)
    chained: Set[str] = set()
    node = call
    while node.parent is not None and node.parent.type == "member_expression":
        outer = node.parent.parent
        if outer is None or outer.type != "call_expression":
            break
        name = method_name(outer, tree.node_text)
        if name is not None:
            chained.add(name)
        node = outer

    has_fields = bool(keys & FIELD_SELECTION_KEYS) or bool(chained & FIELD_SELECTION_CHAIN)
    has_limit = bool(keys & LIMIT_KEYS) or bool(chained & LIMIT_CHAIN)
    return has_fields, has_limit
