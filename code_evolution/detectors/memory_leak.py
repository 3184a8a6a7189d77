"""Memory leak detector: listeners, timers, globals and oversized closures."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from tree_sitter import Node

from ..analyzer.nodes import (
    FUNCTION_TYPES,
    call_arguments,
    callee,
    enclosing_function_or_program,
    member_object,
    method_name,
    node_key,
    object_keys,
    root_identifier,
    string_value,
    unwrap,
    walk,
)
from ..analyzer.parser import ParsedSource
from ..models import AnalysisContext, DetectorResult, Issue, Severity
from .base import Detector, create_impact


class FrameworkFamily(Enum):
    """How a UI framework expresses component teardown."""
    NONE = "none"
    HOOK_BASED = "hook-based"
    LIFECYCLE_BASED = "lifecycle-based"


FRAMEWORK_PACKAGES = {
    "react": "react",
    "react-dom": "react",
    "preact": "react",
    "next": "react",
    "vue": "vue",
    "@angular/core": "angular",
}

EFFECT_HOOKS = frozenset({"useEffect", "useLayoutEffect"})
VUE_TEARDOWN_HOOKS = frozenset({"onUnmounted", "onBeforeUnmount"})
TEARDOWN_METHODS = {
    "componentWillUnmount": "react",
    "ngOnDestroy": "angular",
    "unmounted": "vue",
    "beforeUnmount": "vue",
    "beforeDestroy": "vue",
    "destroyed": "vue",
    "disconnectedCallback": None,
}
GLOBAL_OBJECTS = frozenset({"window", "global", "globalThis"})
TIMER_CLEAR_FUNCTIONS = frozenset({"clearInterval", "clearTimeout"})
LARGE_ARRAY_THRESHOLD = 100


@dataclass(frozen=True)
class FrameworkInfo:
    """UI framework used by one file."""
    name: Optional[str] = None        # react, vue, angular
    family: FrameworkFamily = FrameworkFamily.NONE

    @property
    def detected(self) -> bool:
        return self.name is not None

    @property
    def label(self) -> str:
        return self.name or "none"


def classify_framework(tree: ParsedSource) -> FrameworkInfo:
    """Infer the UI framework from imports and characteristic hook/method names."""
    name: Optional[str] = None
    uses_hooks = False
    uses_lifecycle = False

    for node in walk(tree.root):
        if node.type == "import_statement":
            source = node.child_by_field_name("source")
            if source is not None and name is None:
                name = _framework_for_package(string_value(source, tree.node_text))
        elif node.type == "call_expression":
            called = method_name(node, tree.node_text)
            if called == "require":
                args = call_arguments(node)
                if args and args[0].type == "string" and name is None:
                    name = _framework_for_package(string_value(args[0], tree.node_text))
            elif called in EFFECT_HOOKS:
                uses_hooks = True
                name = name or "react"
            elif called in VUE_TEARDOWN_HOOKS:
                uses_hooks = True
                name = name or "vue"
        elif node.type == "method_definition":
            method = node.child_by_field_name("name")
            teardown_owner = TEARDOWN_METHODS.get(tree.node_text(method)) if method is not None else None
            if teardown_owner is not None:
                uses_lifecycle = True
                name = name or teardown_owner

    if name is None:
        return FrameworkInfo()
    if uses_hooks:
        return FrameworkInfo(name, FrameworkFamily.HOOK_BASED)
    if uses_lifecycle or name == "angular":
        return FrameworkInfo(name, FrameworkFamily.LIFECYCLE_BASED)
    # Modern React / Vue default to hooks / composition API
    return FrameworkInfo(name, FrameworkFamily.HOOK_BASED)


def _framework_for_package(source: str) -> Optional[str]:
    lowered = source.lower()
    for package, framework in FRAMEWORK_PACKAGES.items():
        if lowered == package or lowered.startswith(package + "/"):
            return framework
    if lowered.startswith("@angular/"):
        return "angular"
    return None


class MemoryLeakDetector(Detector):
    """Finds resources registered without a matching release."""

    name = "Memory Leak Detector"

    def detect(self, tree: ParsedSource, context: AnalysisContext) -> DetectorResult:
        framework = classify_framework(tree)
        issues: List[Issue] = []

        for node in walk(tree.root):
            if node.type == "call_expression":
                called = method_name(node, tree.node_text)
                if called == "addEventListener":
                    issue = self._check_listener(node, tree, context, framework)
                elif called == "setInterval" and _is_global_timer(node, tree):
                    issue = self._check_timer(node, tree, context, framework)
                else:
                    issue = None
                if issue is not None:
                    issues.append(issue)
            elif node.type == "assignment_expression":
                issue = self._check_global_assignment(node, tree, context)
                if issue is not None:
                    issues.append(issue)
            elif node.type == "variable_declarator":
                issue = self._check_closure(node, tree, context)
                if issue is not None:
                    issues.append(issue)

        return DetectorResult(detector_name=self.name, issues=issues)

    # -- listeners ----------------------------------------------------

    def _check_listener(
        self,
        call: Node,
        tree: ParsedSource,
        context: AnalysisContext,
        framework: FrameworkInfo,
    ) -> Optional[Issue]:
        args = call_arguments(call)
        if len(args) >= 3 and args[2].type == "object":
            keys = object_keys(args[2], tree.node_text)
            if "signal" in keys or "once" in keys:
                return None
        event = string_value(args[0], tree.node_text) if args and args[0].type == "string" else None

        for region in release_regions(call, tree):
            for node in walk(region):
                if node.type != "call_expression":
                    continue
                if method_name(node, tree.node_text) != "removeEventListener":
                    continue
                removal_args = call_arguments(node)
                removed = (
                    string_value(removal_args[0], tree.node_text)
                    if removal_args and removal_args[0].type == "string" else None
                )
                if event is None or removed is None or removed == event:
                    return None

        severity = Severity.HIGH if framework.detected else Severity.MEDIUM
        event_label = f"'{event}' " if event else ""
        return self.create_issue(
            context,
            issue_type="event_listener_leak",
            severity=severity,
            node=call,
            title="Event Listener Not Removed",
            description=(
                f"Event listener {event_label}is added but never removed. "
                f"{_listener_advice(framework)}"
            ),
            impact=create_impact(
                7 if framework.detected else 5,
                "Listener and its closure stay reachable after their owner is gone",
                85 if framework.detected else 70,
                {
                    "framework": framework.label,
                    "frameworkFamily": framework.family.value,
                    "solution": _teardown_name(framework),
                },
            ),
        )

    # -- timers -------------------------------------------------------

    def _check_timer(
        self,
        call: Node,
        tree: ParsedSource,
        context: AnalysisContext,
        framework: FrameworkInfo,
    ) -> Optional[Issue]:
        stored = timer_target(call, tree)

        for region in release_regions(call, tree):
            for node in walk(region):
                if node.type != "call_expression":
                    continue
                if method_name(node, tree.node_text) not in TIMER_CLEAR_FUNCTIONS:
                    continue
                clear_args = call_arguments(node)
                if stored is None:
                    return None
                if clear_args and tree.node_text(clear_args[0]).replace(" ", "") == stored:
                    return None

        # A repeating timer nobody clears runs forever
        return self.create_issue(
            context,
            issue_type="timer_leak",
            severity=Severity.CRITICAL,
            node=call,
            title="Timer Not Cleared",
            description=(
                "setInterval() is never cleared with clearInterval(). The callback keeps "
                "running"
                + (f" after the {framework.name} component is destroyed" if framework.detected else "")
                + " and keeps everything it references alive."
            ),
            impact=create_impact(
                9,
                "Callback runs indefinitely and retains its closure",
                90 if framework.detected and stored is not None else 85,
                {
                    "framework": framework.label,
                    "frameworkFamily": framework.family.value,
                    "timerIdStored": stored is not None,
                },
            ),
        )

    # -- globals and closures -----------------------------------------

    def _check_global_assignment(self, node: Node, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        left = node.child_by_field_name("left")
        if left is None or left.type != "member_expression":
            return None
        obj = member_object(left)
        if obj is None or obj.type != "identifier" or tree.node_text(obj) not in GLOBAL_OBJECTS:
            return None
        target = tree.node_text(left)
        return self.create_issue(
            context,
            issue_type="global_variable_leak",
            severity=Severity.MEDIUM,
            node=node,
            title="Global Variable Assignment",
            description=(
                f"Assigning {target} stores data on the global object, where it is never "
                f"garbage collected. Keep it in module scope or release it explicitly."
            ),
            impact=create_impact(5, "Value lives for the lifetime of the page/process", 65, {"target": target}),
        )

    def _check_closure(self, declarator: Node, tree: ParsedSource, context: AnalysisContext) -> Optional[Issue]:
        if context.scopes is None:
            return None
        function = unwrap(declarator.child_by_field_name("value"))
        if function is None or function.type not in FUNCTION_TYPES:
            return None

        captured = next(_captured_large_arrays(function, tree, context), None)
        if captured is None:
            return None
        name, size = captured
        return self.create_issue(
            context,
            issue_type="closure_memory_leak",
            severity=Severity.MEDIUM,
            node=declarator,
            title="Closure Retains Large Array",
            description=(
                f"This closure references '{name}', an array literal with {size} elements "
                f"declared in an outer scope. The array stays in memory as long as the "
                f"closure is reachable."
            ),
            impact=create_impact(
                6,
                "Large array retained by closure",
                55,
                {"arrayName": name, "arraySize": size},
            ),
        )


def _captured_large_arrays(function: Node, tree: ParsedSource, context: AnalysisContext) -> Iterator[Tuple[str, int]]:
    seen = set()
    for node in walk(function):
        if node.type not in ("identifier", "shorthand_property_identifier"):
            continue
        binding = context.scopes.resolve(node)
        if binding is None or id(binding) in seen:
            continue
        seen.add(id(binding))
        # only bindings declared outside the closure are captured
        if function.start_byte <= binding.node.start_byte < function.end_byte:
            continue
        init = unwrap(binding.init)
        if init is None or init.type != "array":
            continue
        size = len([c for c in init.named_children if c.type != "comment"])
        if size > LARGE_ARRAY_THRESHOLD:
            yield binding.name, size


def _is_global_timer(call: Node, tree: ParsedSource) -> bool:
    """`setInterval(...)` or `window.setInterval(...)`, not `obj.setInterval(...)`."""
    target = callee(call)
    if target is None:
        return False
    if target.type == "identifier":
        return True
    return root_identifier(target, tree.node_text) in GLOBAL_OBJECTS


def timer_target(call: Node, tree: ParsedSource) -> Optional[str]:
    """Where a timer id is stored (`id` in `const id = setInterval(...)`), if anywhere."""
    parent = call.parent
    if parent is None:
        return None
    if parent.type == "variable_declarator":
        name = parent.child_by_field_name("name")
        if name is not None and name.type == "identifier":
            return tree.node_text(name)
    if parent.type == "assignment_expression":
        left = parent.child_by_field_name("left")
        if left is not None:
            return tree.node_text(left).replace(" ", "")
    return None


def release_regions(call: Node, tree: ParsedSource) -> List[Node]:
    """
    Code where a release of something registered by `call` counts:
    the enclosing function, an enclosing effect-hook callback, teardown
    methods of the enclosing class/options object, and Vue unmount hooks
    registered by an enclosing function.
    """
    regions = [enclosing_function_or_program(call)]

    current = call.parent
    while current is not None:
        if current.type in FUNCTION_TYPES:
            hook_call = _hook_call_of(current)
            if hook_call is not None and method_name(hook_call, tree.node_text) in EFFECT_HOOKS:
                regions.append(current)
            for hook in _vue_teardown_callbacks(current, tree):
                regions.append(hook)
        elif current.type in ("class_body", "object"):
            regions.extend(_teardown_methods(current, tree))
        current = current.parent

    unique = {}
    for region in regions:
        unique.setdefault(node_key(region), region)
    return list(unique.values())


def _hook_call_of(function: Node) -> Optional[Node]:
    """The call a function is passed to as an argument, if any."""
    parent = function.parent
    if parent is None or parent.type != "arguments":
        return None
    call = parent.parent
    if call is not None and call.type == "call_expression":
        return call
    return None


def _vue_teardown_callbacks(function: Node, tree: ParsedSource) -> List[Node]:
    callbacks = []
    body = function.child_by_field_name("body")
    if body is None:
        return callbacks
    for node in walk(body, lambda n: n.type not in FUNCTION_TYPES):
        if node.type == "call_expression" and method_name(node, tree.node_text) in VUE_TEARDOWN_HOOKS:
            callbacks.extend(a for a in call_arguments(node) if a.type in FUNCTION_TYPES)
    return callbacks


def _teardown_methods(container: Node, tree: ParsedSource) -> List[Node]:
    methods = []
    for member in container.named_children:
        if member.type == "method_definition":
            name = member.child_by_field_name("name")
            if name is not None and tree.node_text(name) in TEARDOWN_METHODS:
                methods.append(member)
        elif member.type == "pair":
            key = member.child_by_field_name("key")
            value = unwrap(member.child_by_field_name("value"))
            if (
                key is not None and value is not None
                and tree.node_text(key) in TEARDOWN_METHODS
                and value.type in FUNCTION_TYPES
            ):
                methods.append(value)
    return methods


def _teardown_name(framework: FrameworkInfo) -> str:
    if framework.name == "react":
        if framework.family is FrameworkFamily.LIFECYCLE_BASED:
            return "componentWillUnmount"
        return "useEffect cleanup"
    if framework.name == "angular":
        return "ngOnDestroy"
    if framework.name == "vue":
        if framework.family is FrameworkFamily.LIFECYCLE_BASED:
            return "beforeUnmount"
        return "onBeforeUnmount"
    return "removeEventListener"


def _listener_advice(framework: FrameworkInfo) -> str:
    if framework.detected:
        return (
            f"Remove it in {_teardown_name(framework)} so the handler does not outlive "
            f"the {framework.name} component."
        )
    return "Call removeEventListener() or register it with an AbortController signal."
