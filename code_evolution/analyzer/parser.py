"""tree-sitter binding for JavaScript / TypeScript sources."""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import PurePath
from typing import List, Optional, Tuple

import tree_sitter_javascript as ts_javascript
import tree_sitter_typescript as ts_typescript
from tree_sitter import Language, Node, Parser, Tree


class Dialect(Enum):
    """Grammar used to parse a source."""
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    TSX = "tsx"


JAVASCRIPT_EXTENSIONS = {".js", ".jsx", ".mjs", ".cjs"}
TYPESCRIPT_EXTENSIONS = {".ts", ".mts", ".cts"}


class SourceParseError(ValueError):
    """Source text could not be parsed."""

    def __init__(self, file_identifier: str, message: str, line: int = 0, column: int = 0):
        self.file_identifier = file_identifier
        self.message = message
        self.line = line
        self.column = column
        super().__init__(f"{file_identifier}: {message}")


@lru_cache(maxsize=None)
def get_language(dialect: Dialect) -> Language:
    """Load (once) the grammar for a dialect."""
    if dialect is Dialect.TYPESCRIPT:
        return Language(ts_typescript.language_typescript())
    if dialect is Dialect.TSX:
        return Language(ts_typescript.language_tsx())
    return Language(ts_javascript.language())


def dialect_for(file_identifier: str) -> Dialect:
    """Pick a grammar from a file name."""
    suffix = PurePath(file_identifier or "").suffix.lower()
    if suffix in JAVASCRIPT_EXTENSIONS:
        return Dialect.JAVASCRIPT
    if suffix in TYPESCRIPT_EXTENSIONS:
        return Dialect.TYPESCRIPT
    return Dialect.TSX


@dataclass
class ParsedSource:
    """A parsed tree together with the bytes it was parsed from."""
    source: bytes
    tree: Tree
    dialect: Dialect

    @property
    def root(self) -> Node:
        return self.tree.root_node

    @property
    def text(self) -> str:
        return self.source.decode("utf-8")

    def node_text(self, node: Optional[Node]) -> str:
        """Source text covered by a node."""
        if node is None:
            return ""
        return self.source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    @property
    def has_errors(self) -> bool:
        return self.root.has_error

    def syntax_errors(self, limit: int = 10) -> List[Tuple[int, int, str]]:
        """(line, column, message) for ERROR / MISSING nodes, 1-based lines."""
        errors: List[Tuple[int, int, str]] = []
        if not self.root.has_error:
            return errors

        stack = [self.root]
        while stack and len(errors) < limit:
            node = stack.pop()
            if node.is_missing:
                line, column = node.start_point
                errors.append((line + 1, column, f"Missing '{node.type}'"))
                continue
            if node.type == "ERROR":
                line, column = node.start_point
                snippet = self.node_text(node).strip().splitlines()
                near = snippet[0][:40] if snippet else ""
                errors.append((line + 1, column, f"Unexpected token near '{near}'"))
                continue
            if node.has_error:
                stack.extend(reversed(node.children))

        if not errors:
            # has_error without a visible ERROR node
            errors.append((1, 0, "Syntax error"))
        return sorted(errors)


def parse_code(code: str, dialect: Dialect = Dialect.TSX) -> ParsedSource:
    """Parse code without raising; callers inspect `has_errors`."""
    source = code.encode("utf-8")
    parser = Parser(get_language(dialect))
    return ParsedSource(source=source, tree=parser.parse(source), dialect=dialect)


def parse_source(source_text: str, file_identifier: str = "<source>") -> ParsedSource:
    """
    Parse analysed source text.

    Args:
        source_text: Program text
        file_identifier: File name, used for grammar choice and errors

    Returns:
        ParsedSource

    Raises:
        SourceParseError: If the text has a syntax error
    """
    parsed = parse_code(source_text, dialect_for(file_identifier))
    if parsed.has_errors:
        line, column, message = parsed.syntax_errors(limit=1)[0]
        raise SourceParseError(
            file_identifier,
            f"{message} ({line}:{column})",
            line=line,
            column=column,
        )
    return parsed
