"""Parsing module for the text query language."""

from nddb.parsing.query_lexer import QueryLexer
from nddb.parsing.query_parser import Clause, QueryParser

__all__ = [
    "Clause",
    "QueryLexer",
    "QueryParser",
]
