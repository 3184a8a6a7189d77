"""Node-kind vocabularies and small tree helpers shared by every walker."""

from typing import Callable, Iterator, List, Optional, Tuple

from tree_sitter import Node

from ..models import LoopKind


# Function-like nodes: each opens a new function scope
FUNCTION_TYPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
})

STATEMENT_LOOP_TYPES = frozenset({
    "for_statement",
    "for_in_statement",
    "while_statement",
    "do_statement",
})

ITERATION_METHODS = frozenset({"forEach", "map", "flatMap", "filter", "reduce"})

CALL_TYPES = frozenset({"call_expression", "new_expression"})

MEMBER_TYPES = frozenset({"member_expression", "subscript_expression"})

OBJECT_TYPES = frozenset({"object", "object_pattern"})

DECLARATION_TYPES = frozenset({
    "variable_declaration",
    "lexical_declaration",
    "function_declaration",
    "generator_function_declaration",
    "class_declaration",
    "abstract_class_declaration",
    "import_statement",
})

STRING_TYPES = frozenset({"string", "template_string"})

# Wrappers that do not change the value of the wrapped expression
TRANSPARENT_TYPES = frozenset({
    "parenthesized_expression",
    "await_expression",
    "non_null_expression",
    "as_expression",
    "satisfies_expression",
})

NodeKey = Tuple[int, int, str]


def node_key(node: Node) -> NodeKey:
    """Stable identity for a node within one tree."""
    return (node.start_byte, node.end_byte, node.type)


def line_of(node: Node) -> int:
    """1-based line of a node."""
    return node.start_point[0] + 1


def walk(
    node: Node,
    descend: Optional[Callable[[Node], bool]] = None,
) -> Iterator[Node]:
    """
    Pre-order walk without recursion.

    Args:
        node: Start node (yielded first)
        descend: Called for every yielded node except the start; children
            are visited only when it returns True

    Yields:
        Nodes in source order
    """
    yield node
    stack = list(reversed(node.children))
    while stack:
        current = stack.pop()
        yield current
        if descend is None or descend(current):
            stack.extend(reversed(current.children))


def walk_same_function(node: Node) -> Iterator[Node]:
    """Walk a subtree without entering nested function bodies."""
    return walk(node, lambda n: n.type not in FUNCTION_TYPES)


def loop_kind(node: Node) -> Optional[LoopKind]:
    """LoopKind of a statement loop node, or None."""
    if node.type == "for_statement":
        return LoopKind.FOR
    if node.type == "for_in_statement":
        operator = node.child_by_field_name("operator")
        if operator is not None and operator.type == "in":
            return LoopKind.FOR_IN
        return LoopKind.FOR_OF
    if node.type == "while_statement":
        return LoopKind.WHILE
    if node.type == "do_statement":
        return LoopKind.DO_WHILE
    return None


def unwrap(node: Optional[Node]) -> Optional[Node]:
    """Strip await / parentheses / TS assertions around an expression."""
    while node is not None and node.type in TRANSPARENT_TYPES:
        inner = [c for c in node.named_children if c.type != "comment"]
        if not inner:
            break
        node = inner[0]
    return node


def callee(call: Node) -> Optional[Node]:
    """The called expression of a call or `new` expression."""
    if call.type == "new_expression":
        return call.child_by_field_name("constructor")
    return call.child_by_field_name("function")


def call_arguments(call: Node) -> List[Node]:
    """Argument expressions of a call (empty for tagged templates)."""
    args = call.child_by_field_name("arguments")
    if args is None or args.type != "arguments":
        return []
    return [a for a in args.named_children if a.type != "comment"]


def property_name(member: Node, text_of: Callable[[Node], str]) -> Optional[str]:
    """Static property name of `a.b` or `a['b']`."""
    if member.type == "member_expression":
        prop = member.child_by_field_name("property")
        return text_of(prop) if prop is not None else None
    if member.type == "subscript_expression":
        index = member.child_by_field_name("index")
        if index is not None and index.type == "string":
            return string_value(index, text_of)
    return None


def member_object(member: Node) -> Optional[Node]:
    return member.child_by_field_name("object")


def method_name(call: Node, text_of: Callable[[Node], str]) -> Optional[str]:
    """`m` for `x.m(...)`, `f` for `f(...)`, None otherwise."""
    target = callee(call)
    if target is None:
        return None
    if target.type == "identifier":
        return text_of(target)
    if target.type in MEMBER_TYPES:
        return property_name(target, text_of)
    return None


def receiver_name(call: Node, text_of: Callable[[Node], str]) -> Optional[str]:
    """`x` for `x.m(...)` when the receiver is a plain identifier."""
    target = callee(call)
    if target is None or target.type not in MEMBER_TYPES:
        return None
    obj = member_object(target)
    if obj is not None and obj.type == "identifier":
        return text_of(obj)
    return None


def root_identifier(node: Optional[Node], text_of: Callable[[Node], str]) -> Optional[str]:
    """Leftmost identifier of a member / call chain (`res` in `res.status(200).json`)."""
    while node is not None:
        if node.type == "identifier":
            return text_of(node)
        if node.type in MEMBER_TYPES:
            node = member_object(node)
        elif node.type in CALL_TYPES:
            node = callee(node)
        elif node.type in TRANSPARENT_TYPES:
            node = unwrap(node)
        else:
            return None
    return None


def string_value(node: Node, text_of: Callable[[Node], str]) -> str:
    """Literal value of a string node (quotes stripped)."""
    raw = text_of(node)
    if len(raw) >= 2 and raw[0] in "'\"`" and raw[-1] == raw[0]:
        return raw[1:-1]
    return raw


def is_async_function(node: Node) -> bool:
    return node.type in FUNCTION_TYPES and any(c.type == "async" for c in node.children)


def function_body(node: Node) -> Optional[Node]:
    return node.child_by_field_name("body")


def enclosing_function(node: Node) -> Optional[Node]:
    """Nearest function-like ancestor, or None at program level."""
    current = node.parent
    while current is not None:
        if current.type in FUNCTION_TYPES:
            return current
        current = current.parent
    return None


def enclosing_function_or_program(node: Node) -> Node:
    found = enclosing_function(node)
    if found is not None:
        return found
    current = node
    while current.parent is not None:
        current = current.parent
    return current


def object_keys(obj: Node, text_of: Callable[[Node], str]) -> List[str]:
    """Keys written in an object literal."""
    keys = []
    for child in obj.named_children:
        if child.type == "pair":
            key = child.child_by_field_name("key")
            if key is not None:
                keys.append(string_value(key, text_of) if key.type == "string" else text_of(key))
        elif child.type == "shorthand_property_identifier":
            keys.append(text_of(child))
        elif child.type == "method_definition":
            name = child.child_by_field_name("name")
            if name is not None:
                keys.append(text_of(name))
    return keys


def object_pair(obj: Node, key_name: str, text_of: Callable[[Node], str]) -> Optional[Node]:
    """The `pair` node for `key_name` in an object literal."""
    for child in obj.named_children:
        if child.type != "pair":
            continue
        key = child.child_by_field_name("key")
        if key is None:
            continue
        name = string_value(key, text_of) if key.type == "string" else text_of(key)
        if name == key_name:
            return child
    return None


def pattern_identifiers(pattern: Optional[Node]) -> List[Node]:
    """Identifier nodes bound by a declaration pattern."""
    found: List[Node] = []
    stack = [pattern] if pattern is not None else []
    while stack:
        node = stack.pop()
        if node.type in ("identifier", "shorthand_property_identifier_pattern"):
            found.append(node)
        elif node.type == "pair_pattern":
            value = node.child_by_field_name("value")
            if value is not None:
                stack.append(value)
        elif node.type in ("assignment_pattern", "object_assignment_pattern"):
            left = node.child_by_field_name("left")
            if left is not None:
                stack.append(left)
        elif node.type in ("required_parameter", "optional_parameter"):
            inner = node.child_by_field_name("pattern")
            if inner is not None:
                stack.append(inner)
        elif node.type in ("object_pattern", "array_pattern", "rest_pattern", "formal_parameters"):
            stack.extend(reversed(node.named_children))
    return found


def top_level_statements(root: Node) -> List[Node]:
    """Named statement children of a program, comments excluded."""
    return [c for c in root.named_children if c.type != "comment" and c.type != "hash_bang_line"]
