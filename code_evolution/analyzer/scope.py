"""Lexical scope resolution over a parsed tree."""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from tree_sitter import Node

from .nodes import (
    FUNCTION_TYPES,
    NodeKey,
    node_key,
    pattern_identifiers,
)
from .parser import ParsedSource


LEXICAL_KINDS = frozenset({"let", "const", "class", "import"})

REFERENCE_TYPES = frozenset({
    "identifier",
    "shorthand_property_identifier",
    "shorthand_property_identifier_pattern",
})


@dataclass
class Binding:
    """A declared name."""
    name: str
    kind: str                       # var, let, const, function, class, param, import, catch
    node: Node                      # identifier node of the declaration
    declarator: Optional[Node]      # variable_declarator / function / class / import node
    scope: "Scope"

    @property
    def init(self) -> Optional[Node]:
        """Initializer expression of a variable declarator."""
        if self.declarator is not None and self.declarator.type == "variable_declarator":
            return self.declarator.child_by_field_name("value")
        return None


@dataclass(eq=False)
class Scope:
    """One lexical scope."""
    node: Node
    kind: str                       # program, function, block, for, catch
    parent: Optional["Scope"] = None
    bindings: Dict[str, Binding] = field(default_factory=dict)
    children: List["Scope"] = field(default_factory=list)
    duplicates: List[Tuple[Binding, Binding]] = field(default_factory=list)

    @property
    def function_scope(self) -> "Scope":
        """Nearest enclosing function or program scope (var hoisting target)."""
        scope = self
        while scope.kind not in ("function", "program") and scope.parent is not None:
            scope = scope.parent
        return scope

    def declare(self, binding: Binding) -> None:
        existing = self.bindings.get(binding.name)
        if existing is None:
            self.bindings[binding.name] = binding
            return
        if _conflicts(existing.kind, binding.kind):
            self.duplicates.append((existing, binding))

    def lookup(self, name: str) -> Optional[Binding]:
        scope: Optional[Scope] = self
        while scope is not None:
            found = scope.bindings.get(name)
            if found is not None:
                return found
            scope = scope.parent
        return None


def _conflicts(first: str, second: str) -> bool:
    if first in LEXICAL_KINDS or second in LEXICAL_KINDS:
        return True
    return first == "function" and second == "function"


class ScopeTree:
    """
    Scopes and bindings of one parsed source.

    `var` and function-parameter bindings live in the function scope;
    `let`, `const`, `class` and block-level functions live in their block.
    """

    def __init__(self, parsed: ParsedSource):
        self.parsed = parsed
        self._scopes: Dict[NodeKey, Scope] = {}
        self.root = self._new_scope(parsed.root, "program", None)
        self._build()

    # -- construction -------------------------------------------------

    def _new_scope(self, node: Node, kind: str, parent: Optional[Scope]) -> Scope:
        scope = Scope(node=node, kind=kind, parent=parent)
        if parent is not None:
            parent.children.append(scope)
        self._scopes[node_key(node)] = scope
        return scope

    def _bind(self, scope: Scope, ident: Node, kind: str, declarator: Optional[Node]) -> None:
        name = self.parsed.node_text(ident)
        scope.declare(Binding(name=name, kind=kind, node=ident, declarator=declarator, scope=scope))

    def _build(self) -> None:
        stack: List[Tuple[Node, Scope]] = [
            (child, self.root) for child in reversed(self.parsed.root.children)
        ]
        while stack:
            node, scope = stack.pop()
            inner = scope
            t = node.type

            if t in FUNCTION_TYPES:
                inner = self._enter_function(node, scope)
                body = node.child_by_field_name("body")
                # Parameters and the body block share the function scope
                if body is not None and body.type == "statement_block":
                    stack.extend((c, inner) for c in reversed(body.children))
                    stack.extend(
                        (c, inner) for c in reversed(node.children)
                        if node_key(c) != node_key(body)
                    )
                    continue
            elif t in ("statement_block", "switch_body", "class_static_block"):
                inner = self._new_scope(node, "block", scope)
            elif t in ("for_statement", "for_in_statement"):
                inner = self._new_scope(node, "for", scope)
                self._declare_for_header(node, inner)
            elif t == "catch_clause":
                inner = self._new_scope(node, "catch", scope)
                param = node.child_by_field_name("parameter")
                for ident in pattern_identifiers(param):
                    self._bind(inner, ident, "catch", node)
                # The parameter and the body block share the catch scope
                body = node.child_by_field_name("body")
                if body is not None:
                    stack.extend((c, inner) for c in reversed(body.children))
                    stack.extend(
                        (c, inner) for c in reversed(node.children)
                        if node_key(c) != node_key(body)
                    )
                    continue
            elif t == "variable_declaration":
                self._declare_declarators(node, scope.function_scope, "var")
            elif t == "lexical_declaration":
                kind_node = node.child_by_field_name("kind")
                kind = self.parsed.node_text(kind_node) if kind_node is not None else "let"
                self._declare_declarators(node, scope, kind)
            elif t in ("class_declaration", "abstract_class_declaration"):
                name = node.child_by_field_name("name")
                if name is not None:
                    self._bind(scope, name, "class", node)
            elif t == "import_statement":
                self._declare_imports(node)

            stack.extend((c, inner) for c in reversed(node.children))

    def _enter_function(self, node: Node, scope: Scope) -> Scope:
        name = node.child_by_field_name("name")
        if node.type in ("function_declaration", "generator_function_declaration") and name is not None:
            self._bind(scope, name, "function", node)
        inner = self._new_scope(node, "function", scope)
        if node.type in ("function_expression", "function", "generator_function") and name is not None:
            self._bind(inner, name, "function", node)

        params = node.child_by_field_name("parameters")
        if params is None:
            params = node.child_by_field_name("parameter")
        for ident in pattern_identifiers(params):
            self._bind(inner, ident, "param", node)
        return inner

    def _declare_declarators(self, node: Node, scope: Scope, kind: str) -> None:
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            for ident in pattern_identifiers(declarator.child_by_field_name("name")):
                self._bind(scope, ident, kind, declarator)

    def _declare_for_header(self, node: Node, scope: Scope) -> None:
        if node.type == "for_in_statement":
            left = node.child_by_field_name("left")
            kind_node = node.child_by_field_name("kind")
            if kind_node is None or left is None:
                return
            kind = self.parsed.node_text(kind_node)
            target = scope if kind in ("let", "const") else scope.function_scope
            for ident in pattern_identifiers(left):
                self._bind(target, ident, kind, node)
        # for_statement initializers are ordinary declarations visited as children

    def _declare_imports(self, node: Node) -> None:
        for child in node.named_children:
            if child.type != "import_clause":
                continue
            for part in child.named_children:
                if part.type == "identifier":
                    self._bind(self.root, part, "import", node)
                elif part.type == "namespace_import":
                    for ident in part.named_children:
                        if ident.type == "identifier":
                            self._bind(self.root, ident, "import", node)
                elif part.type == "named_imports":
                    for spec in part.named_children:
                        if spec.type != "import_specifier":
                            continue
                        local = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                        if local is not None and local.type == "identifier":
                            self._bind(self.root, local, "import", node)

    # -- queries ------------------------------------------------------

    def scope_at(self, node: Node) -> Scope:
        """Innermost scope containing a node (the node's own scope if it opens one)."""
        current: Optional[Node] = node
        while current is not None:
            found = self._scopes.get(node_key(current))
            if found is not None:
                return found
            current = current.parent
        return self.root

    def resolve(self, ident: Node) -> Optional[Binding]:
        """Binding an identifier reference resolves to."""
        start = ident.parent if ident.parent is not None else ident
        return self.scope_at(start).lookup(self.parsed.node_text(ident))

    def scopes(self) -> Iterator[Scope]:
        stack = [self.root]
        while stack:
            scope = stack.pop()
            yield scope
            stack.extend(reversed(scope.children))

    def bindings(self) -> Iterator[Binding]:
        for scope in self.scopes():
            yield from scope.bindings.values()

    def duplicates(self) -> List[Tuple[Binding, Binding]]:
        found: List[Tuple[Binding, Binding]] = []
        for scope in self.scopes():
            found.extend(scope.duplicates)
        return found

    def references(self, binding: Binding) -> List[Node]:
        """Every identifier node (declaration included) bound to `binding`."""
        found = []
        for node in _walk_all(self.parsed.root):
            if node.type not in REFERENCE_TYPES:
                continue
            if self.parsed.node_text(node) != binding.name:
                continue
            resolved = self.resolve(node)
            if resolved is binding:
                found.append(node)
        return found


def _walk_all(root: Node) -> Iterator[Node]:
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))
