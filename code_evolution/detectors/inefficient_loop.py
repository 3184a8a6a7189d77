"""Inefficient loop detector."""

from typing import Callable, List, Optional

from tree_sitter import Node

from ..analyzer.nodes import (
    FUNCTION_TYPES,
    MEMBER_TYPES,
    STATEMENT_LOOP_TYPES,
    STRING_TYPES,
    callee,
    call_arguments,
    member_object,
    method_name,
    property_name,
    receiver_name,
    unwrap,
    walk,
    walk_same_function,
)
from ..analyzer.parser import ParsedSource
from ..models import AnalysisContext, DetectorResult, Issue, Loop, LoopKind, Severity
from .base import Detector, callback_arguments, create_impact, enclosing_loop, find_loops


NESTED_METHOD_OUTER = frozenset({"map", "filter", "forEach"})
NESTED_METHOD_INNER = frozenset({"map", "filter", "forEach", "find", "some", "every"})
DOM_METHODS = frozenset({"appendChild", "insertBefore", "removeChild"})
REGEX_METHODS = frozenset({"match", "test", "exec", "search", "replace"})
LOOKUP_METHODS = frozenset({"includes", "indexOf", "lastIndexOf", "find", "findIndex"})
SYNC_IO_METHODS = frozenset({
    "readFileSync",
    "writeFileSync",
    "appendFileSync",
    "existsSync",
    "statSync",
})
OBJECT_KEY_METHODS = frozenset({"keys", "values", "entries"})

FOR_KINDS = frozenset({LoopKind.FOR, LoopKind.FOR_OF, LoopKind.FOR_IN})
ITERABLE_KINDS = frozenset({LoopKind.FOR_OF, LoopKind.FOR_IN})


def complexity_label(depth: int) -> str:
    if depth == 2:
        return "O(n²)"
    if depth == 3:
        return "O(n³)"
    return f"O(n^{depth})"


class InefficientLoopDetector(Detector):
    """Independent checks for costly work inside loops and chained array methods."""

    name = "Inefficient Loop Detector"

    def detect(self, tree: ParsedSource, context: AnalysisContext) -> DetectorResult:
        issues: List[Issue] = []

        for node in walk(tree.root):
            if node.type != "call_expression":
                continue
            issue = self._check_filter_map_chain(node, tree, context)
            if issue is not None:
                issues.append(issue)
            issue = self._check_nested_array_methods(node, tree, context)
            if issue is not None:
                issues.append(issue)

        for loop in find_loops(tree, context):
            if loop.kind is LoopKind.ITERATION_METHOD:
                continue
            issues.extend(self._check_loop(loop, tree, context))

        return DetectorResult(detector_name=self.name, issues=issues)

    # -- call-level checks --------------------------------------------

    def _check_filter_map_chain(self, call: Node, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        if method_name(call, tree.node_text) != "map":
            return None
        target = callee(call)
        if target is None or target.type != "member_expression":
            return None
        inner = unwrap(member_object(target))
        if inner is None or inner.type != "call_expression":
            return None
        if method_name(inner, tree.node_text) != "filter":
            return None

        return self.create_issue(
            context,
            issue_type="inefficient_array_chaining",
            severity=Severity.MEDIUM,
            node=call,
            title="Inefficient Array Method Chaining",
            description=(
                "Using filter() followed by map() iterates the array twice. "
                "Consider using reduce() or a single loop for better performance."
            ),
            impact=create_impact(5, "2x iterations for filter + map", 80, {"iterations": 2}),
        )

    def _check_nested_array_methods(self, call: Node, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        if method_name(call, tree.node_text) not in NESTED_METHOD_OUTER:
            return None
        target = callee(call)
        if target is None or target.type != "member_expression":
            return None

        inner_methods = []
        for callback in callback_arguments(call):
            for node in walk(callback):
                if node.type != "call_expression":
                    continue
                inner_target = callee(node)
                if inner_target is None or inner_target.type != "member_expression":
                    continue
                name = method_name(node, tree.node_text)
                if name in NESTED_METHOD_INNER:
                    inner_methods.append(name)
        if not inner_methods:
            return None

        return self.create_issue(
            context,
            issue_type="nested_array_methods",
            severity=Severity.HIGH,
            node=call,
            title="Nested Array Methods (O(n²) complexity)",
            description=(
                "Nested array methods create O(n²) complexity. Consider using a Map "
                "or Set for lookups to achieve O(n) complexity."
            ),
            impact=create_impact(
                7,
                "O(n²) complexity - 10,000 operations for 100 items",
                75,
                {"complexity": "O(n²)", "innerMethods": inner_methods},
            ),
        )

    # -- loop-level checks --------------------------------------------

    def _check_loop(self, loop: Loop, tree: ParsedSource, context: AnalysisContext) -> List[Issue]:
        checks: List[Callable[[Loop, ParsedSource, AnalysisContext], Optional[Issue]]] = []
        if loop.kind in FOR_KINDS:
            checks.extend([self._check_push, self._check_dom])
        checks.extend([
            self._check_await,
            self._check_string_concat,
            self._check_regex,
            self._check_json,
        ])
        if loop.kind in FOR_KINDS:
            checks.append(self._check_lookups)
        if loop.kind in ITERABLE_KINDS:
            checks.append(self._check_object_keys_lookup)
        checks.extend([self._check_nested_loops, self._check_sync_io])

        issues = []
        for check in checks:
            issue = check(loop, tree, context)
            if issue is not None:
                issues.append(issue)
        return issues

    def _body_calls(self, loop: Loop, tree: ParsedSource) -> List[Node]:
        return [n for body in loop.bodies for n in walk(body) if n.type == "call_expression"]

    def _check_push(self, loop: Loop, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        pushes = [
            c for c in self._body_calls(loop, tree)
            if method_name(c, tree.node_text) == "push" and receiver_name(c, tree.node_text) is not None
        ]
        if not pushes:
            return None
        return self.create_issue(
            context,
            issue_type="array_push_in_loop",
            severity=Severity.LOW,
            node=loop.node,
            title="Array Push in Loop",
            description=(
                "Using push() inside a loop can be inefficient. Consider using map() "
                "or pre-allocating the array."
            ),
            impact=create_impact(3, "Minor performance impact", 60, {"pushCount": len(pushes)}),
        )

    def _check_dom(self, loop: Loop, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        found = False
        for body in loop.bodies:
            for node in walk(body):
                if node.type == "call_expression" and method_name(node, tree.node_text) in DOM_METHODS:
                    found = True
                elif node.type == "member_expression" and property_name(node, tree.node_text) == "innerHTML":
                    found = True
                if found:
                    break
        if not found:
            return None
        return self.create_issue(
            context,
            issue_type="dom_manipulation_in_loop",
            severity=Severity.HIGH,
            node=loop.node,
            title="DOM Manipulation in Loop",
            description=(
                "DOM manipulation inside loops causes multiple reflows/repaints. "
                "Use DocumentFragment or batch updates."
            ),
            impact=create_impact(8, "Multiple browser reflows/repaints", 90),
        )

    def _check_await(self, loop: Loop, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        # awaits inside nested functions suspend that function, not the loop
        count = sum(
            1
            for body in loop.bodies
            for node in walk_same_function(body)
            if node.type == "await_expression"
        )
        if count == 0:
            return None
        return self.create_issue(
            context,
            issue_type="await_in_loop",
            severity=Severity.HIGH,
            node=loop.node,
            title="Await in Loop (Sequential Execution)",
            description=(
                f"Found {count} await expression(s) in loop. This causes sequential "
                f"execution. Use Promise.all() for parallel execution."
            ),
            impact=create_impact(
                8,
                "Sequential execution - N times slower than parallel",
                90,
                {"awaitCount": count},
            ),
        )

    def _check_string_concat(self, loop: Loop, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        found = False
        for body in loop.bodies:
            for node in walk(body):
                if node.type == "binary_expression" and _is_string_plus(node, tree, context.scopes):
                    found = True
                elif node.type == "augmented_assignment_expression" and self._is_string_append(node, tree, context):
                    found = True
                if found:
                    break
        if not found:
            return None
        return self.create_issue(
            context,
            issue_type="string_concat_in_loop",
            severity=Severity.MEDIUM,
            node=loop.node,
            title="String Concatenation in Loop",
            description=(
                "String concatenation in loops creates new string objects each iteration. "
                "Use array.join() or template literals."
            ),
            impact=create_impact(5, "O(n²) memory allocation for string building", 70),
        )

    def _is_string_append(self, node: Node, tree: ParsedSource, context: AnalysisContext) -> bool:
        operator = node.child_by_field_name("operator")
        if operator is None or tree.node_text(operator) != "+=":
            return False
        left = node.child_by_field_name("left")
        right = unwrap(node.child_by_field_name("right"))
        if left is None or left.type != "identifier" or right is None:
            return False
        if right.type in STRING_TYPES:
            return True
        if right.type == "binary_expression" and _is_string_plus(right, tree, context.scopes):
            return True
        return _is_string_variable(left, context.scopes)

    def _check_regex(self, loop: Loop, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        found = False
        for body in loop.bodies:
            for node in walk(body):
                if node.type == "regex":
                    found = True
                elif node.type in ("new_expression", "call_expression"):
                    target = callee(node)
                    if target is not None and target.type == "identifier" and tree.node_text(target) == "RegExp":
                        found = True
                if found:
                    break
        if not found:
            return None
        return self.create_issue(
            context,
            issue_type="regex_compilation_in_loop",
            severity=Severity.MEDIUM,
            node=loop.node,
            title="Regex Compilation in Loop",
            description=(
                "Creating RegExp objects inside loops is expensive. "
                "Move regex compilation outside the loop."
            ),
            impact=create_impact(5, "Regex compiled N times instead of once", 75),
        )

    def _check_json(self, loop: Loop, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        operations = [
            method_name(c, tree.node_text)
            for c in self._body_calls(loop, tree)
            if receiver_name(c, tree.node_text) == "JSON"
            and method_name(c, tree.node_text) in ("parse", "stringify")
        ]
        if not operations:
            return None
        return self.create_issue(
            context,
            issue_type="json_operations_in_loop",
            severity=Severity.HIGH,
            node=loop.node,
            title="JSON Operations in Loop",
            description=(
                "JSON.parse/stringify in loops are expensive operations. "
                "Consider batching or caching."
            ),
            impact=create_impact(
                7,
                "Expensive serialization/deserialization per iteration",
                85,
                {"operationCount": len(operations)},
            ),
        )

    def _check_lookups(self, loop: Loop, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        methods = []
        for call in self._body_calls(loop, tree):
            target = callee(call)
            if target is None or target.type not in MEMBER_TYPES:
                continue
            name = method_name(call, tree.node_text)
            if name not in LOOKUP_METHODS:
                continue
            # Model.find({...}) is a query, not an array scan
            if name == "find" and not callback_arguments(call):
                continue
            methods.append(name)
        if not methods:
            return None
        unique = sorted(set(methods))
        return self.create_issue(
            context,
            issue_type="array_lookup_in_loop",
            severity=Severity.HIGH,
            node=loop.node,
            title="Array Lookup in Loop (O(n²))",
            description=(
                f"Found {len(methods)} array lookup(s) ({', '.join(unique)}) inside loop. "
                f"This creates O(n²) complexity. Use Set or Map for O(1) lookups."
            ),
            impact=create_impact(
                7,
                "O(n²) → O(n) with Set/Map",
                85,
                {"lookupCount": len(methods), "complexity": "O(n²)"},
            ),
        )

    def _check_object_keys_lookup(self, loop: Loop, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        for call in self._body_calls(loop, tree):
            if receiver_name(call, tree.node_text) != "Object":
                continue
            if method_name(call, tree.node_text) not in OBJECT_KEY_METHODS:
                continue
            member = call.parent
            if member is None or member.type != "member_expression":
                continue
            outer = member.parent
            if outer is None or outer.type != "call_expression":
                continue
            if method_name(outer, tree.node_text) not in LOOKUP_METHODS:
                continue
            return self.create_issue(
                context,
                issue_type="object_keys_with_lookup",
                severity=Severity.HIGH,
                node=loop.node,
                title="Object.keys() with Lookup in Loop",
                description=(
                    "Object.keys() combined with an array lookup inside a loop rebuilds and "
                    "scans the key list every iteration. Use the `in` operator, "
                    "Object.hasOwn() or a Map."
                ),
                impact=create_impact(7, "Key array rebuilt and scanned per iteration", 80, {"complexity": "O(n²)"}),
            )
        return None

    def _check_nested_loops(self, loop: Loop, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        # Reported once per nest, at the outermost loop
        if enclosing_loop(loop.node) is not None:
            return None
        depth = nesting_depth(loop.node)
        if depth < 2:
            return None

        complexity = complexity_label(depth)
        severity = Severity.CRITICAL if depth >= 3 else Severity.HIGH
        operations = f"{100 ** depth:,}"
        return self.create_issue(
            context,
            issue_type="nested_loops",
            severity=severity,
            node=loop.node,
            title=f"Nested Loops Detected ({depth} levels)",
            description=(
                f"Found {depth} nested loops creating {complexity} complexity. Consider using "
                f"hash maps, sorting, or database joins to reduce complexity."
            ),
            impact=create_impact(
                9 if depth >= 3 else 7,
                f"{complexity} complexity - {operations} operations for 100 items",
                90,
                {"nestedDepth": depth, "complexity": complexity},
            ),
        )

    def _check_sync_io(self, loop: Loop, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        operations = [
            method_name(c, tree.node_text)
            for c in self._body_calls(loop, tree)
            if method_name(c, tree.node_text) in SYNC_IO_METHODS
        ]
        if not operations:
            return None
        return self.create_issue(
            context,
            issue_type="sync_file_io_in_loop",
            severity=Severity.CRITICAL,
            node=loop.node,
            title="Synchronous File I/O in Loop",
            description=(
                "Synchronous file operations block the event loop. "
                "Use async alternatives with Promise.all()."
            ),
            impact=create_impact(
                9,
                "Blocks event loop - severely impacts performance",
                95,
                {"operations": sorted(set(operations))},
            ),
        )


def nesting_depth(loop_node: Node) -> int:
    """Deepest chain of statement loops starting at `loop_node` (1 = no nesting)."""
    deepest = 1
    stack = [(child, 1) for child in loop_node.children]
    while stack:
        node, depth = stack.pop()
        if node.type in FUNCTION_TYPES:
            continue
        if node.type in STATEMENT_LOOP_TYPES:
            depth += 1
            deepest = max(deepest, depth)
        stack.extend((child, depth) for child in node.children)
    return deepest


def _is_string_plus(node: Node, tree: ParsedSource, scopes=None) -> bool:
    """`a + b` where either side is a string literal or a variable initialized with one."""
    operator = node.child_by_field_name("operator")
    if operator is None or tree.node_text(operator) != "+":
        return False
    for side in ("left", "right"):
        operand = unwrap(node.child_by_field_name(side))
        if operand is None:
            continue
        if operand.type in STRING_TYPES:
            return True
        if operand.type == "identifier" and _is_string_variable(operand, scopes):
            return True
    return False


def _is_string_variable(ident: Node, scopes) -> bool:
    if scopes is None:
        return False
    binding = scopes.resolve(ident)
    init = unwrap(binding.init) if binding is not None else None
    return init is not None and init.type in STRING_TYPES
