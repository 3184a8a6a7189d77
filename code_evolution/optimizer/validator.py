"""Acceptance gate for generated, mutated and recombined code."""

from typing import List, Optional

from ..analyzer.nodes import (
    FUNCTION_TYPES,
    STATEMENT_LOOP_TYPES,
    enclosing_function,
    is_async_function,
    line_of,
    walk,
)
from ..analyzer.parser import Dialect, ParsedSource, parse_code
from ..analyzer.scope import ScopeTree
from ..models import ValidationResult

TERMINATING_STATEMENTS = frozenset({"return_statement", "throw_statement"})

# Declarations that are hoisted and stay reachable after a return
HOISTED_STATEMENTS = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "empty_statement",
    "comment",
})

BLOCK_TYPES = frozenset({"statement_block", "class_static_block"})

# Nodes a break or continue cannot jump out of
JUMP_BOUNDARIES = FUNCTION_TYPES | {"class_static_block"}


class CodeValidator:
    """
    Re-parses code and rejects syntax errors, duplicate declarations and
    the early errors a JavaScript engine raises before running anything:
    const without an initializer, break/continue with no enclosing target,
    return outside a function and await inside a non-async function.

    Unreachable statements and empty blocks only produce warnings.
    """

    def __init__(self, dialect: Dialect = Dialect.TSX):
        self.dialect = dialect

    def validate(self, code: str) -> ValidationResult:
        """
        Validate a piece of code.

        Args:
            code: Program text

        Returns:
            ValidationResult; `tree` holds the parse when the code is valid
        """
        parsed = parse_code(code, self.dialect)
        if parsed.has_errors:
            errors = [
                f"Syntax error at {line}:{column}: {message}"
                for line, column, message in parsed.syntax_errors()
            ]
            return ValidationResult(is_valid=False, errors=errors)

        errors = self._duplicate_declarations(parsed) + self._early_errors(parsed)
        if errors:
            return ValidationResult(is_valid=False, errors=errors)

        warnings = []
        unreachable = self._unreachable_lines(parsed)
        if unreachable:
            lines = ", ".join(str(line) for line in unreachable)
            warnings.append(f"Contains unreachable code (line {lines})")
        empty_blocks = self._empty_block_count(parsed)
        if empty_blocks:
            warnings.append(f"Contains {empty_blocks} empty block(s)")

        return ValidationResult(is_valid=True, warnings=warnings, tree=parsed)

    def is_valid(self, code: str) -> bool:
        return self.validate(code).is_valid

    def _duplicate_declarations(self, parsed: ParsedSource) -> List[str]:
        errors = []
        for first, second in ScopeTree(parsed).duplicates():
            errors.append(
                f"Duplicate declaration '{second.name}' "
                f"(line {line_of(first.node)} and line {line_of(second.node)})"
            )
        return errors

    def _early_errors(self, parsed: ParsedSource) -> List[str]:
        errors = []
        for node in walk(parsed.root):
            t = node.type
            if t == "lexical_declaration":
                errors.extend(_uninitialized_consts(node, parsed))
            elif t == "return_statement":
                if enclosing_function(node) is None:
                    errors.append(f"Illegal return statement (line {line_of(node)})")
            elif t in ("break_statement", "continue_statement"):
                if not _has_jump_target(node, parsed):
                    keyword = "break" if t == "break_statement" else "continue"
                    errors.append(f"Illegal {keyword} statement (line {line_of(node)})")
            elif t == "await_expression":
                function = enclosing_function(node)
                if function is not None and not is_async_function(function):
                    errors.append(f"'await' outside an async function (line {line_of(node)})")
        return errors

    def _unreachable_lines(self, parsed: ParsedSource) -> List[int]:
        lines = []
        for node in walk(parsed.root):
            if node.type not in BLOCK_TYPES and node.type != "switch_case":
                continue
            found = _first_unreachable(node)
            if found is not None:
                lines.append(found)
        return lines

    def _empty_block_count(self, parsed: ParsedSource) -> int:
        count = 0
        for node in walk(parsed.root):
            if node.type == "statement_block" and not node.named_children:
                count += 1
        return count


def _first_unreachable(block) -> Optional[int]:
    terminated = False
    for statement in block.named_children:
        if terminated and statement.type not in HOISTED_STATEMENTS:
            return line_of(statement)
        if statement.type in TERMINATING_STATEMENTS:
            terminated = True
    return None


def _uninitialized_consts(declaration, parsed: ParsedSource) -> List[str]:
    kind = declaration.child_by_field_name("kind")
    if kind is None or parsed.node_text(kind) != "const":
        return []
    # `declare const x: T;` has no value by definition
    if declaration.parent is not None and declaration.parent.type == "ambient_declaration":
        return []
    return [
        f"Missing initializer in const declaration (line {line_of(declarator)})"
        for declarator in declaration.named_children
        if declarator.type == "variable_declarator" and declarator.child_by_field_name("value") is None
    ]


def _has_jump_target(statement, parsed: ParsedSource) -> bool:
    """True when a break/continue has an enclosing loop, switch or matching label."""
    label = statement.child_by_field_name("label")
    label_name = parsed.node_text(label) if label is not None else None
    current = statement.parent
    while current is not None and current.type not in JUMP_BOUNDARIES:
        if label_name is not None:
            if current.type == "labeled_statement":
                own = current.child_by_field_name("label")
                if own is not None and parsed.node_text(own) == label_name:
                    return True
        elif current.type in STATEMENT_LOOP_TYPES:
            return True
        elif current.type == "switch_statement" and statement.type == "break_statement":
            return True
        current = current.parent
    return False


def validate_code(code: str) -> ValidationResult:
    """Validate with the default TSX grammar."""
    return CodeValidator().validate(code)
