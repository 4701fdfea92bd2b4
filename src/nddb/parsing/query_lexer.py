"""Lexer for text queries over a collection."""

import re

import ply.lex as lex


class QueryLexer:
    """Lexer for tokenizing text queries such as ``age > 18 and name in ["a", "b"]``."""

    # Reserved keywords
    reserved = {
        "and": "AND",
        "or": "OR",
        "in": "IN",
        "not": "NOT",
        "true": "TRUE",
        "false": "FALSE",
        "null": "NULL",
    }

    # Token list
    tokens = [
        "IDENTIFIER",
        "INTEGER",
        "FLOAT",
        "STRING",
        "NOT_IN",
        "LBRACKET",
        "RBRACKET",
        "COMMA",
        "EQ",
        "ASSIGN",
        "LT",
        "LTE",
        "GT",
        "GTE",
        "BETWEEN",
        "NOT_BETWEEN",
    ] + list(reserved.values())

    # Simple tokens; PLY sorts string-defined tokens longest-first
    t_LBRACKET = r"\["
    t_RBRACKET = r"\]"
    t_COMMA = r","
    t_EQ = r"=="
    t_ASSIGN = r"="
    t_LTE = r"<="
    t_GTE = r">="
    t_BETWEEN = r"><"
    t_NOT_BETWEEN = r"<>"
    t_LT = r"<"
    t_GT = r">"

    t_ignore = " \t"

    def __init__(self) -> None:
        self.lexer: lex.LexToken = None  # type: ignore

    def t_NOT_IN(self, t: lex.LexToken) -> lex.LexToken:
        r"!in\b"
        return t

    def t_FLOAT(self, t: lex.LexToken) -> lex.LexToken:
        r"-?\d+\.\d+(?:[eE][-+]?\d+)?"
        t.value = float(t.value)
        return t

    def t_INTEGER(self, t: lex.LexToken) -> lex.LexToken:
        r"-?\d+"
        t.value = int(t.value)
        return t

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r'"([^"\\]|\\.)*"|\'([^\'\\]|\\.)*\''
        # Remove quotes and unescape
        t.value = re.sub(r"\\(.)", r"\1", t.value[1:-1])
        return t

    def t_BACKTICK_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"`[^`]+`"
        # Strip backticks, always an IDENTIFIER even if it spells a keyword
        t.value = t.value[1:-1]
        t.type = "IDENTIFIER"
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[a-zA-Z_$][a-zA-Z0-9_$]*(?:\.[a-zA-Z0-9_$]+)*"
        # Dotted paths are a single identifier
        t.type = self.reserved.get(t.value.lower(), "IDENTIFIER")
        return t

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)

    def t_error(self, t: lex.LexToken) -> None:
        raise SyntaxError(f"Illegal character '{t.value[0]}' at position {t.lexpos}")

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        """Set the input string to tokenize."""
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        """Return the next token."""
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens

