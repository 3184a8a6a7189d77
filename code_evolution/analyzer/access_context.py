"""Map identifiers to data-access library families from imports and requires."""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from tree_sitter import Node

from ..models import AccessContext
from .nodes import (
    CALL_TYPES,
    MEMBER_TYPES,
    TRANSPARENT_TYPES,
    callee,
    call_arguments,
    member_object,
    method_name,
    string_value,
    unwrap,
    walk,
)
from .parser import ParsedSource


# Package name -> family
FAMILY_PACKAGES: Dict[str, str] = {
    "sequelize": "sequelize",
    "@prisma/client": "prisma",
    "prisma": "prisma",
    "mongoose": "mongoose",
    "typeorm": "typeorm",
    "knex": "knex",
    "pg": "raw_sql",
    "mysql": "raw_sql",
    "mysql2": "raw_sql",
    "better-sqlite3": "raw_sql",
    "sqlite3": "raw_sql",
}

FAMILY_DISPLAY_NAMES: Dict[str, str] = {
    "sequelize": "Sequelize",
    "prisma": "Prisma",
    "mongoose": "Mongoose",
    "typeorm": "TypeORM",
    "knex": "Knex",
    "raw_sql": "Raw SQL",
    "unknown": "Unknown",
}

# Every method name a loop body is checked for
DATA_ACCESS_METHODS: FrozenSet[str] = frozenset({
    # Sequelize
    "findOne", "findAll", "findByPk", "findAndCountAll",
    # Prisma
    "findUnique", "findMany", "findFirst",
    # Mongoose
    "find", "findById", "findByIdAndUpdate",
    # Raw SQL drivers
    "query", "execute", "raw", "get", "all", "run",
})

# Method name -> family when nothing was imported
METHOD_HEURISTICS: Dict[str, str] = {
    "findOne": "sequelize",
    "findAll": "sequelize",
    "findByPk": "sequelize",
    "findAndCountAll": "sequelize",
    "findUnique": "prisma",
    "findMany": "prisma",
    "findFirst": "prisma",
    "find": "mongoose",
    "findById": "mongoose",
    "findByIdAndUpdate": "mongoose",
    "query": "raw_sql",
    "execute": "raw_sql",
    "raw": "raw_sql",
}

_FAMILY_ALIASES = {
    "raw sql": "raw_sql",
    "raw-sql": "raw_sql",
    "sql": "raw_sql",
    "prismaclient": "prisma",
}


def normalize_family(name: str) -> str:
    """`Raw SQL` -> `raw_sql`, `Prisma` -> `prisma`."""
    key = name.strip().lower()
    return _FAMILY_ALIASES.get(key, key.replace(" ", "_"))


def display_name(family: str) -> str:
    return FAMILY_DISPLAY_NAMES.get(family, family)


def family_for_package(source: str) -> Optional[str]:
    """Family of an import source, matching `pkg` and `pkg/...`."""
    lowered = source.lower()
    for package, family in FAMILY_PACKAGES.items():
        if lowered == package or lowered.startswith(package + "/"):
            return family
    return None


@dataclass(frozen=True)
class DataAccessCatalog:
    """Method names treated as data access, plus the name-based fallback."""
    methods: FrozenSet[str] = DATA_ACCESS_METHODS
    heuristics: Dict[str, str] = field(default_factory=lambda: dict(METHOD_HEURISTICS))

    @classmethod
    def with_patterns(cls, patterns: Iterable[Tuple[str, Iterable[str]]]) -> "DataAccessCatalog":
        """Extend the defaults with (family, methods) project patterns."""
        methods: Set[str] = set(DATA_ACCESS_METHODS)
        heuristics = dict(METHOD_HEURISTICS)
        for family, names in patterns:
            family = normalize_family(family)
            for name in names:
                methods.add(name)
                heuristics.setdefault(name, family)
        return cls(methods=frozenset(methods), heuristics=heuristics)

    def resolve(
        self,
        call: Node,
        method: str,
        parsed: ParsedSource,
        access: Optional[AccessContext],
    ) -> Optional[str]:
        """
        Family of a data-access call, or None when it should not count.

        Import-based resolution wins. When the file imports some family but the
        call cannot be traced to it, the name-based guess is only accepted if it
        names one of the imported families. Without any import the name-based
        guess is used as is.
        """
        if access is not None and access.has_families:
            family = resolve_call_family(call, parsed, access)
            if family is not None:
                return family
            guess = self.heuristics.get(method)
            if guess is not None and guess in access.families:
                return guess
            return None
        return self.heuristics.get(method)


def resolve_call_family(call: Node, parsed: ParsedSource, access: AccessContext) -> Optional[str]:
    """Follow the callee chain (`a.b.c()`, `a().b()`) to an imported identifier."""
    node = callee(call)
    while node is not None:
        if node.type == "identifier":
            return _family_of_name(parsed.node_text(node), access)
        if node.type in MEMBER_TYPES:
            obj = member_object(node)
            if obj is not None and obj.type == "identifier":
                family = _family_of_name(parsed.node_text(obj), access)
                if family is not None:
                    return family
            node = obj
        elif node.type in CALL_TYPES:
            node = callee(node)
        elif node.type in TRANSPARENT_TYPES:
            node = unwrap(node)
        else:
            return None
    return None


def _family_of_name(name: str, access: AccessContext) -> Optional[str]:
    if access.client_binding is not None and name == access.client_binding:
        return "prisma"
    return access.symbols.get(name)


def build_access_context(parsed: ParsedSource) -> AccessContext:
    """
    Build the AccessContext of a file from its imports and requires.

    Args:
        parsed: Parsed source

    Returns:
        AccessContext (empty when nothing data-access related is imported)
    """
    symbols: Dict[str, str] = {}
    families: Set[str] = set()
    prisma_client_names: List[str] = []

    for node in walk(parsed.root):
        if node.type == "import_statement":
            source = node.child_by_field_name("source")
            if source is None:
                continue
            family = family_for_package(string_value(source, parsed.node_text))
            if family is None:
                continue
            families.add(family)
            for local, imported in _import_bindings(node, parsed):
                symbols[local] = family
                if imported == "PrismaClient":
                    prisma_client_names.append(local)

        elif node.type == "call_expression" and _is_require(node, parsed):
            source = call_arguments(node)[0]
            family = family_for_package(string_value(source, parsed.node_text))
            if family is None:
                continue
            families.add(family)
            for local, imported in _require_bindings(node, parsed):
                symbols[local] = family
                if imported == "PrismaClient":
                    prisma_client_names.append(local)

    client_binding = _find_prisma_client(parsed, prisma_client_names)
    if client_binding is not None:
        symbols[client_binding] = "prisma"

    return AccessContext(
        families=frozenset(families),
        symbols=symbols,
        client_binding=client_binding,
    )


def _is_require(call: Node, parsed: ParsedSource) -> bool:
    target = callee(call)
    if target is None or target.type != "identifier" or parsed.node_text(target) != "require":
        return False
    args = call_arguments(call)
    return bool(args) and args[0].type == "string"


def _import_bindings(node: Node, parsed: ParsedSource) -> List[Tuple[str, str]]:
    """(local name, imported name) pairs of an import statement."""
    pairs = []
    for clause in node.named_children:
        if clause.type != "import_clause":
            continue
        for part in clause.named_children:
            if part.type == "identifier":
                name = parsed.node_text(part)
                pairs.append((name, "default"))
            elif part.type == "namespace_import":
                for ident in part.named_children:
                    if ident.type == "identifier":
                        pairs.append((parsed.node_text(ident), "*"))
            elif part.type == "named_imports":
                for spec in part.named_children:
                    if spec.type != "import_specifier":
                        continue
                    name = spec.child_by_field_name("name")
                    alias = spec.child_by_field_name("alias")
                    if name is None:
                        continue
                    imported = parsed.node_text(name)
                    local = parsed.node_text(alias) if alias is not None else imported
                    pairs.append((local, imported))
    return pairs


def _require_bindings(call: Node, parsed: ParsedSource) -> List[Tuple[str, str]]:
    """(local name, imported name) pairs of `const x = require(...)`."""
    parent = call.parent
    if parent is None or parent.type != "variable_declarator":
        return []
    target = parent.child_by_field_name("name")
    if target is None:
        return []
    if target.type == "identifier":
        return [(parsed.node_text(target), "default")]
    pairs = []
    if target.type == "object_pattern":
        for prop in target.named_children:
            if prop.type == "shorthand_property_identifier_pattern":
                name = parsed.node_text(prop)
                pairs.append((name, name))
            elif prop.type == "pair_pattern":
                key = prop.child_by_field_name("key")
                value = prop.child_by_field_name("value")
                if key is not None and value is not None and value.type == "identifier":
                    pairs.append((parsed.node_text(value), parsed.node_text(key)))
    return pairs


def _find_prisma_client(parsed: ParsedSource, constructor_names: List[str]) -> Optional[str]:
    """Variable holding `new PrismaClient()`."""
    if not constructor_names:
        return None
    for node in walk(parsed.root):
        if node.type != "new_expression":
            continue
        if method_name(node, parsed.node_text) not in constructor_names:
            continue
        parent = node.parent
        if parent is not None and parent.type == "variable_declarator":
            name = parent.child_by_field_name("name")
            if name is not None and name.type == "identifier":
                return parsed.node_text(name)
    return None
