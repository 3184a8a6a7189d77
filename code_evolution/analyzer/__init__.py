"""Parsing, scope resolution and access-library context."""

from .parser import Dialect, ParsedSource, SourceParseError, dialect_for, parse_code, parse_source
from .scope import Binding, Scope, ScopeTree
from .access_context import DataAccessCatalog, build_access_context

__all__ = [
    "Dialect",
    "ParsedSource",
    "SourceParseError",
    "dialect_for",
    "parse_code",
    "parse_source",
    "Binding",
    "Scope",
    "ScopeTree",
    "DataAccessCatalog",
    "build_access_context",
]
