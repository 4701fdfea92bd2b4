"""Parser for text queries over a collection.

A query is a sequence of terms joined by ``and`` / ``or``::

    age > 18 and country in ["it", "de"] or vip

Each term is a field path, optionally followed by an operator and a
value. The result is a flat list of clauses; the collection evaluates them
with its usual right-to-left connective semantics.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import ply.yacc as yacc

from nddb.parsing.query_lexer import QueryLexer


@dataclass
class Clause:
    """One term of a text query."""

    connective: str  # AND or OR; the first clause is always AND
    field: str
    operator: str | None = None  # None means "field exists"
    value: Any = None


class QueryParser:
    """Parser for text queries."""

    tokens = QueryLexer.tokens

    def __init__(self) -> None:
        self.lexer = QueryLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_query(self, p: yacc.YaccProduction) -> None:
        """query : term"""
        p[1].connective = "AND"
        p[0] = [p[1]]

    def p_query_and(self, p: yacc.YaccProduction) -> None:
        """query : query AND term"""
        p[3].connective = "AND"
        p[0] = p[1] + [p[3]]

    def p_query_or(self, p: yacc.YaccProduction) -> None:
        """query : query OR term"""
        p[3].connective = "OR"
        p[0] = p[1] + [p[3]]

    def p_term_exists(self, p: yacc.YaccProduction) -> None:
        """term : IDENTIFIER"""
        p[0] = Clause(connective="AND", field=p[1])

    def p_term_compare(self, p: yacc.YaccProduction) -> None:
        """term : IDENTIFIER operator value"""
        p[0] = Clause(connective="AND", field=p[1], operator=p[2], value=p[3])

    def p_operator(self, p: yacc.YaccProduction) -> None:
        """operator : EQ
                    | ASSIGN
                    | GT
                    | GTE
                    | LT
                    | LTE
                    | BETWEEN
                    | NOT_BETWEEN
                    | IN"""
        p[0] = p[1].lower()

    def p_operator_not_in(self, p: yacc.YaccProduction) -> None:
        """operator : NOT_IN
                    | NOT IN"""
        p[0] = "!in"

    def p_value_number(self, p: yacc.YaccProduction) -> None:
        """value : INTEGER
                 | FLOAT"""
        p[0] = p[1]

    def p_value_string(self, p: yacc.YaccProduction) -> None:
        """value : STRING"""
        p[0] = p[1]

    def p_value_true(self, p: yacc.YaccProduction) -> None:
        """value : TRUE"""
        p[0] = True

    def p_value_false(self, p: yacc.YaccProduction) -> None:
        """value : FALSE"""
        p[0] = False

    def p_value_null(self, p: yacc.YaccProduction) -> None:
        """value : NULL"""
        p[0] = None

    def p_value_list(self, p: yacc.YaccProduction) -> None:
        """value : LBRACKET RBRACKET
                 | LBRACKET value_list RBRACKET
                 | LBRACKET value_list COMMA RBRACKET"""
        p[0] = [] if len(p) == 3 else p[2]

    def p_value_list_single(self, p: yacc.YaccProduction) -> None:
        """value_list : value"""
        p[0] = [p[1]]

    def p_value_list_multiple(self, p: yacc.YaccProduction) -> None:
        """value_list : value_list COMMA value"""
        p[0] = p[1] + [p[3]]

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(f"Syntax error at '{p.value}' (position {p.lexpos})")
        else:
            raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, **kwargs)

    def parse(self, data: str) -> list[Clause]:
        """Parse a text query into a list of clauses.

        Raises:
            SyntaxError: If the query is empty or malformed.
        """
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        if not data or not data.strip():
            raise SyntaxError("Empty query")

        clauses = self.parser.parse(data, lexer=self.lexer.lexer)
        if clauses is None:
            raise SyntaxError("Syntax error at end of input")
        return clauses
