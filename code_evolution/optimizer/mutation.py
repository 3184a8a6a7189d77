"""Structural edits applied to candidate code.

Every operator takes code text and a random source and returns a
MutationResult. Edits are spliced into the source at node byte ranges
and the result is re-validated; an operator that cannot apply, or whose
output fails validation, returns the input code with success=False.
"""

import random
import re
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from tree_sitter import Node

from ..analyzer.access_context import DataAccessCatalog, build_access_context
from ..analyzer.nodes import (
    FUNCTION_TYPES,
    MEMBER_TYPES,
    call_arguments,
    callee,
    function_body,
    is_async_function,
    method_name,
    object_pair,
    unwrap,
    walk,
)
from ..analyzer.parser import ParsedSource, parse_code
from ..analyzer.scope import Binding, ScopeTree
from ..models import MutationResult
from ..utils.logging import get_logger
from .validator import CodeValidator

logger = get_logger("optimizer.mutation")

Edit = Tuple[int, int, str]
MutationOperator = Callable[[str, random.Random], MutationResult]

RENAME_SUFFIXES = ["New", "Updated", "Modified", "Alt", "V2"]
RENAME_PREFIXES = ["my", "the", "current", "temp"]
RENAMABLE_KINDS = frozenset({"var", "let", "const"})

# family -> method -> sibling methods with the same call shape
METHOD_ALTERNATIVES: Dict[str, Dict[str, List[str]]] = {
    "prisma": {
        "findMany": ["findFirst"],
        "findFirst": ["findMany"],
        "findUnique": ["findFirst"],
    },
    "sequelize": {
        "findAll": ["findOne"],
        "findOne": ["findAll"],
    },
    "mongoose": {
        "find": ["findOne"],
        "findOne": ["find"],
    },
}

# family -> (selection key, selection value)
FIELD_SELECTIONS = {
    "prisma": ("select", "{ id: true, name: true }"),
    "sequelize": ("attributes", "['id', 'name']"),
    "typeorm": ("select", "['id', 'name']"),
}

PAGINATION_KEYS = {
    "prisma": "take",
    "sequelize": "limit",
    "typeorm": "take",
}

CACHE_GUARD = "if (cache.has(key)) {{\n{indent}  return cache.get(key);\n{indent}}}\n{indent}"
CACHE_GUARD_PREFIX = "if (cache.has(key))"

_CATALOG = DataAccessCatalog()
_validator = CodeValidator()


def apply_edits(source: bytes, edits: Sequence[Edit]) -> str:
    """Splice (start_byte, end_byte, replacement) edits into source text."""
    result = source
    for start, end, replacement in sorted(edits, key=lambda e: e[0], reverse=True):
        result = result[:start] + replacement.encode("utf-8") + result[end:]
    return result.decode("utf-8")


def _accept(original: str, new_code: str, description: str) -> MutationResult:
    validation = _validator.validate(new_code)
    if not validation.is_valid:
        return MutationResult(
            code=original,
            success=False,
            description=f"Validation failed: {', '.join(validation.errors)}",
        )
    return MutationResult(code=new_code, success=True, description=description)


def _decline(code: str, description: str) -> MutationResult:
    return MutationResult(code=code, success=False, description=description)


def _parse(code: str) -> Optional[ParsedSource]:
    parsed = parse_code(code)
    return None if parsed.has_errors else parsed


# -- rename -------------------------------------------------------------

def new_variable_name(old_name: str, rng: random.Random) -> str:
    """`user` -> `userUpdated` or `currentUser`."""
    if rng.random() > 0.5:
        return old_name + rng.choice(RENAME_SUFFIXES)
    return rng.choice(RENAME_PREFIXES) + old_name[:1].upper() + old_name[1:]


def rename_variable(code: str, rng: random.Random) -> MutationResult:
    """Rename one declared variable consistently through its references."""
    parsed = _parse(code)
    if parsed is None:
        return _decline(code, "Code does not parse")

    scopes = ScopeTree(parsed)
    bindings: List[Binding] = [b for b in scopes.bindings() if b.kind in RENAMABLE_KINDS]
    if not bindings:
        return _decline(code, "No variables to rename")

    binding = rng.choice(bindings)
    new_name = new_variable_name(binding.name, rng)
    if re.search(rf"\b{re.escape(new_name)}\b", code):
        return _decline(code, f"Name '{new_name}' is already in use")

    edits: List[Edit] = []
    for ref in scopes.references(binding):
        if ref.type in ("shorthand_property_identifier", "shorthand_property_identifier_pattern"):
            # `{ user }` keeps its key: `{ user: currentUser }`
            edits.append((ref.start_byte, ref.end_byte, f"{binding.name}: {new_name}"))
        else:
            edits.append((ref.start_byte, ref.end_byte, new_name))
    if not edits:
        return _decline(code, "Failed to rename variable")

    new_code = apply_edits(parsed.source, edits)
    return _accept(code, new_code, f"Renamed variable '{binding.name}' to '{new_name}'")


# -- data-access calls --------------------------------------------------

def data_access_calls(parsed: ParsedSource) -> List[Tuple[Node, str, str]]:
    """(call, method, family) for every data-access call in the code."""
    access = build_access_context(parsed)
    found = []
    for node in walk(parsed.root):
        if node.type != "call_expression":
            continue
        target = callee(node)
        if target is None or target.type not in MEMBER_TYPES:
            continue
        method = method_name(node, parsed.node_text)
        if method is None or method not in _CATALOG.methods:
            continue
        family = _CATALOG.resolve(node, method, parsed, access)
        if family is not None:
            found.append((node, method, family))
    return found


def _options_object(call: Node) -> Optional[Node]:
    args = call_arguments(call)
    if not args:
        return None
    first = unwrap(args[0])
    if first is None or first.type != "object":
        return None
    return first


def _entries(node: Node) -> List[Node]:
    return [c for c in node.named_children if c.type != "comment"]


def _insert_entry(obj: Node, entry: str) -> Edit:
    last = _entries(obj)[-1]
    return (last.end_byte, last.end_byte, f", {entry}")


def _remove_entry(element: Node) -> Edit:
    following = element.next_sibling
    if following is not None and following.type == ",":
        return (element.start_byte, following.end_byte, "")
    preceding = element.prev_sibling
    if preceding is not None and preceding.type == ",":
        return (preceding.start_byte, element.end_byte, "")
    return (element.start_byte, element.end_byte, "")


def _query_option_edits(
    parsed: ParsedSource,
    obj: Node,
    family: str,
    rng: random.Random,
) -> List[Tuple[Edit, str]]:
    """Applicable (edit, description) choices for one options object."""
    text_of = parsed.node_text
    choices: List[Tuple[Edit, str]] = []

    selection = FIELD_SELECTIONS.get(family)
    if selection is not None:
        key, value = selection
        if object_pair(obj, key, text_of) is None:
            choices.append((_insert_entry(obj, f"{key}: {value}"), f"field selection ({key})"))

    page_key = PAGINATION_KEYS.get(family)
    if page_key is not None and object_pair(obj, page_key, text_of) is None:
        size = rng.randint(10, 59)
        choices.append((_insert_entry(obj, f"{page_key}: {size}"), f"pagination ({page_key}: {size})"))

    include = object_pair(obj, "include", text_of)
    if include is not None:
        value = include.child_by_field_name("value")
        if value is not None and value.type in ("object", "array"):
            entries = _entries(value)
            if entries:
                removed = rng.choice(entries)
                choices.append((_remove_entry(removed), "removed one include entry"))

    return choices


def mutate_query_options(code: str, rng: random.Random) -> MutationResult:
    """Add field selection or pagination to a query, or drop one included relation."""
    parsed = _parse(code)
    if parsed is None:
        return _decline(code, "Code does not parse")

    candidates = []
    for call, method, family in data_access_calls(parsed):
        obj = _options_object(call)
        if obj is not None and _entries(obj):
            candidates.append((call, method, family, obj))
    if not candidates:
        return _decline(code, "No database queries with an options object")

    _, method, family, obj = rng.choice(candidates)
    choices = _query_option_edits(parsed, obj, family, rng)
    if not choices:
        return _decline(code, f"Nothing to change in {method} options")

    edit, what = rng.choice(choices)
    new_code = apply_edits(parsed.source, [edit])
    return _accept(code, new_code, f"Modified {family} {method} query parameters: {what}")


def swap_data_access_method(code: str, rng: random.Random) -> MutationResult:
    """Replace a data-access method with a sibling from the same library."""
    parsed = _parse(code)
    if parsed is None:
        return _decline(code, "Code does not parse")

    candidates = [
        (call, method, family)
        for call, method, family in data_access_calls(parsed)
        if METHOD_ALTERNATIVES.get(family, {}).get(method)
    ]
    if not candidates:
        return _decline(code, "No database queries with a known alternative")

    call, method, family = rng.choice(candidates)
    new_method = rng.choice(METHOD_ALTERNATIVES[family][method])
    prop = callee(call).child_by_field_name("property")
    if prop is None:
        return _decline(code, "Failed to mutate ORM method")

    new_code = apply_edits(parsed.source, [(prop.start_byte, prop.end_byte, new_method)])
    return _accept(code, new_code, f"Changed {family} method from '{method}' to '{new_method}'")


# -- cache guard --------------------------------------------------------

def add_cache_guard(code: str, rng: random.Random) -> MutationResult:
    """Prepend a cache lookup with early return to an async function body."""
    parsed = _parse(code)
    if parsed is None:
        return _decline(code, "Code does not parse")

    targets = []
    for node in walk(parsed.root):
        if node.type not in FUNCTION_TYPES or not is_async_function(node):
            continue
        body = function_body(node)
        if body is None or body.type != "statement_block" or not body.named_children:
            continue
        first = body.named_children[0]
        if parsed.node_text(first).startswith(CACHE_GUARD_PREFIX):
            continue
        targets.append(first)
    if not targets:
        return _decline(code, "No suitable function found for optimization")

    first = rng.choice(targets)
    indent = " " * first.start_point[1]
    guard = CACHE_GUARD.format(indent=indent)
    new_code = apply_edits(parsed.source, [(first.start_byte, first.start_byte, guard)])
    return _accept(code, new_code, "Added caching optimization")


MUTATION_OPERATORS: List[MutationOperator] = [
    rename_variable,
    mutate_query_options,
    swap_data_access_method,
    add_cache_guard,
]


def apply_random_mutation(
    code: str,
    rng: Optional[random.Random] = None,
    operators: Optional[Sequence[MutationOperator]] = None,
) -> MutationResult:
    """
    Try the operators in random order and return the first success.

    Args:
        code: Candidate code
        rng: Random source (a fresh one when omitted)
        operators: Operators to choose from (all by default)

    Returns:
        The first successful MutationResult, or a failure carrying `code`
    """
    rng = rng or random.Random()
    shuffled = list(operators or MUTATION_OPERATORS)
    rng.shuffle(shuffled)

    for operator in shuffled:
        try:
            result = operator(code, rng)
        except Exception as e:
            logger.debug(f"Mutation {operator.__name__} raised: {e}")
            continue
        if result.success:
            return result
        logger.debug(f"Mutation {operator.__name__} declined: {result.description}")

    return MutationResult(code=code, success=False, description="All mutation attempts failed")
