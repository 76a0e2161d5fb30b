# *****************************COPYRIGHT*******************************
# (C) Crown copyright Met Office. All rights reserved.
# For further details please refer to the file LICENSE
# which you should have received as part of this distribution.
# *****************************COPYRIGHT*******************************
"""
Tokenizer for free-form Fortran source.

The tokenizer turns the physical lines of one file into a flat list of
Tokens. Logical statements are delimited by END-OF-LINE tokens, so a
statement continued over several physical lines with '&' is a single run
of tokens, while every token still reports the physical line and column
it was found on.

Character literals are matched quote for quote (with doubled quotes as
the escape) so that '!' or '&' inside a string is never taken for a
comment or a continuation. A malformed line raises a LexError, which is
recorded and tokenizing picks up again at the next physical line.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set

from .errors import LexError
from .search_lists import fortran_keywords

logger = logging.getLogger(__name__)

NAME_RE = re.compile(r"[A-Za-z][A-Za-z0-9_]*")
DIGITS_RE = re.compile(r"[0-9]+")
FRACTION_RE = re.compile(r"\.[0-9]*")
EXPONENT_RE = re.compile(r"[EeDdQq][+-]?[0-9]+")
KIND_SUFFIX_RE = re.compile(r"_[A-Za-z0-9_]+")
DOTTED_OPERATOR_RE = re.compile(r"\.[A-Za-z]+\.")

# Longest first, so "::" wins over ":" and so on.
TWO_CHAR_OPERATORS = ("::", "=>", "==", "/=", "<=", ">=", "**", "//")

# Characters which may stand alone as an operator or delimiter.
OPERATOR_CHARACTERS = set("=+-*/()<>,:%[].")


class TokenKind(Enum):
    IDENTIFIER = "identifier"
    KEYWORD = "keyword"
    NUMBER = "number"
    STRING = "string"
    COMMENT = "comment"
    OPERATOR = "operator"
    CONTINUATION = "continuation-marker"
    EOL = "end-of-line"
    DIRECTIVE = "directive"


# Tokens that never take part in a statement.
NON_CODE_KINDS = (TokenKind.COMMENT, TokenKind.CONTINUATION,
                  TokenKind.DIRECTIVE)


@dataclass(frozen=True)
class Token:
    """A lexeme and its 1-based, end-inclusive position."""

    kind: TokenKind
    text: str
    line: int
    column: int
    end_line: int
    end_column: int

    @property
    def lower(self) -> str:
        return self.text.lower()

    @property
    def is_name(self) -> bool:
        return self.kind in (TokenKind.IDENTIFIER, TokenKind.KEYWORD)

    def is_word(self, *words: str) -> bool:
        """True if this is an identifier or keyword spelling one of words."""
        return self.is_name and self.text.lower() in words

    def is_op(self, *operators: str) -> bool:
        return self.kind == TokenKind.OPERATOR and self.text in operators


@dataclass
class TokenizedSource:
    """
    Everything the tokenizer learnt about one file: the tokens plus a
    record per physical line of its length and indentation width.
    """

    lines: List[str]
    tokens: List[Token]
    line_lengths: List[int]
    indents: List[Optional[int]]
    continued_lines: Set[int] = field(default_factory=set)
    errors: List[LexError] = field(default_factory=list)
    _statements: Optional[List[List[Token]]] = field(
        default=None, repr=False, compare=False
    )

    def statements(self) -> List[List[Token]]:
        """Group the code tokens into logical statements."""
        if self._statements is None:
            statements = []
            current = []
            for token in self.tokens:
                if token.kind in NON_CODE_KINDS:
                    continue
                if token.kind == TokenKind.EOL:
                    if current:
                        statements.append(current)
                    current = []
                    continue
                current.append(token)
            if current:
                statements.append(current)
            self._statements = statements
        return self._statements

    def comments(self) -> List[Token]:
        return [t for t in self.tokens if t.kind == TokenKind.COMMENT]


@dataclass
class _PendingString:
    """A character literal still open at the end of a physical line."""

    quote: str
    line: int
    column: int
    text: str


def indent_width(line: str) -> Optional[int]:
    """
    Number of leading spaces on a line, or None if a tab turns up in the
    leading whitespace (the width is then ambiguous).
    """
    width = 0
    for char in line:
        if char == " ":
            width += 1
        elif char == "\t":
            return None
        else:
            break
    return width


class FortranTokenizer:
    """Tokenize the physical lines of one free-form Fortran file."""

    def __init__(self, lines: List[str]):
        self.lines = [line.rstrip("\r\n") for line in lines]
        self.tokens = []
        self.errors = []
        self.continued_lines = set()
        self._continuing = False
        self._last_ampersand = (0, 0)
        self._pending_string = None
        self._open_statement = False
        self._constructor_depth = 0

    def run(self) -> TokenizedSource:
        for lineno, line in enumerate(self.lines, start=1):
            try:
                self._tokenize_line(lineno, line)
            except LexError as err:
                logger.debug(f"[WARN] Line {lineno}: {err.msg}")
                self.errors.append(err)
                self._pending_string = None
                self._continuing = False
                self._end_statement(lineno, len(line) + 1, "\n")

        if self._continuing or self._pending_string is not None:
            line, column = self._last_ampersand
            self.errors.append(
                LexError(
                    "Continuation marker '&' has no following line to "
                    "continue onto",
                    line,
                    column,
                )
            )
            self._pending_string = None
            self._continuing = False
            self._end_statement(line, column + 1, "\n")

        return TokenizedSource(
            lines=self.lines,
            tokens=self.tokens,
            line_lengths=[len(line) for line in self.lines],
            indents=[indent_width(line) for line in self.lines],
            continued_lines=self.continued_lines,
            errors=self.errors,
        )

    def _emit(self, kind, text, line, column, end_line=None, end_column=None):
        if end_line is None:
            end_line = line
        if end_column is None:
            end_column = column + len(text) - 1
        self.tokens.append(
            Token(kind, text, line, column, end_line, end_column)
        )
        if kind not in NON_CODE_KINDS and kind != TokenKind.EOL:
            self._open_statement = True

    def _end_statement(self, line, column, text):
        if self._open_statement:
            self.tokens.append(
                Token(TokenKind.EOL, text, line, column, line, column)
            )
        self._open_statement = False
        self._constructor_depth = 0

    def _tokenize_line(self, lineno: int, line: str):
        stripped = line.strip()
        first = len(line) - len(line.lstrip(" \t"))

        if not stripped:
            return
        if stripped.startswith("!"):
            # Comment lines may sit between a line and its continuation.
            self._emit(TokenKind.COMMENT, line[first:], lineno, first + 1)
            return

        if self._pending_string is not None:
            self.continued_lines.add(lineno)
            pos = self._resume_string(lineno, line, first)
            if pos is None:
                return
        elif self._continuing:
            self.continued_lines.add(lineno)
            self._continuing = False
            pos = first
            if line[pos] == "&":
                self._emit(TokenKind.CONTINUATION, "&", lineno, pos + 1)
                pos += 1
        else:
            if stripped.startswith("#"):
                self._emit(TokenKind.DIRECTIVE, line[first:], lineno,
                           first + 1)
                return
            pos = first

        self._scan(lineno, line, pos)

    def _scan(self, lineno: int, line: str, pos: int):
        length = len(line)
        while pos < length:
            char = line[pos]
            if char in " \t":
                pos += 1
            elif char == "!":
                self._emit(TokenKind.COMMENT, line[pos:], lineno, pos + 1)
                break
            elif char in "'\"":
                pos = self._scan_string(lineno, line, pos)
                if pos is None:
                    return
            elif char == "&":
                rest = line[pos + 1:].strip()
                if rest and not rest.startswith("!"):
                    raise LexError(
                        "Continuation marker '&' must be the last "
                        "non-comment character on a line",
                        lineno,
                        pos + 1,
                    )
                self._emit(TokenKind.CONTINUATION, "&", lineno, pos + 1)
                self._continuing = True
                self._last_ampersand = (lineno, pos + 1)
                pos += 1
            elif char == ";":
                self._end_statement(lineno, pos + 1, ";")
                pos += 1
            elif NAME_RE.match(line, pos):
                end = NAME_RE.match(line, pos).end()
                text = line[pos:end]
                kind = (TokenKind.KEYWORD if text.lower() in fortran_keywords
                        else TokenKind.IDENTIFIER)
                self._emit(kind, text, lineno, pos + 1)
                pos = end
            elif DIGITS_RE.match(line, pos) or (
                    char == "." and DIGITS_RE.match(line, pos + 1)):
                end = self._number_end(line, pos)
                self._emit(TokenKind.NUMBER, line[pos:end], lineno, pos + 1)
                pos = end
            elif char == "." and DOTTED_OPERATOR_RE.match(line, pos):
                end = DOTTED_OPERATOR_RE.match(line, pos).end()
                self._emit(TokenKind.OPERATOR, line[pos:end], lineno, pos + 1)
                pos = end
            else:
                pos = self._scan_operator(lineno, line, pos)

        if not self._continuing:
            self._end_statement(lineno, length + 1, "\n")

    def _scan_operator(self, lineno, line, pos):
        char = line[pos]
        if char not in OPERATOR_CHARACTERS:
            raise LexError(f"Unexpected character {char!r}", lineno, pos + 1)
        following = line[pos + 1:pos + 2]
        if (char == "(" and following == "/"
                and line[pos + 2:pos + 3] not in (")", "=", "/")):
            self._constructor_depth += 1
            text = "(/"
        elif char == "/" and following == ")" and self._constructor_depth:
            self._constructor_depth -= 1
            text = "/)"
        elif line[pos:pos + 2] in TWO_CHAR_OPERATORS:
            text = line[pos:pos + 2]
        else:
            text = char
        self._emit(TokenKind.OPERATOR, text, lineno, pos + 1)
        return pos + len(text)

    @staticmethod
    def _number_end(line: str, pos: int) -> int:
        """Index just past a numeric literal, including any _kind suffix."""
        end = pos
        match = DIGITS_RE.match(line, pos)
        if match:
            end = match.end()
        # "1.eq.n" is the integer 1 followed by a dotted operator.
        if (end < len(line) and line[end] == "."
                and not DOTTED_OPERATOR_RE.match(line, end)):
            end = FRACTION_RE.match(line, end).end()
        match = EXPONENT_RE.match(line, end)
        if match:
            end = match.end()
        match = KIND_SUFFIX_RE.match(line, end)
        if match:
            end = match.end()
        return end

    @staticmethod
    def _closing_quote(line: str, pos: int, quote: str) -> Optional[int]:
        """Index of the quote closing a literal, skipping doubled quotes."""
        while True:
            end = line.find(quote, pos)
            if end == -1:
                return None
            if line[end + 1:end + 2] == quote:
                pos = end + 2
                continue
            return end

    def _scan_string(self, lineno, line, pos):
        quote = line[pos]
        end = self._closing_quote(line, pos + 1, quote)
        if end is not None:
            self._emit(TokenKind.STRING, line[pos:end + 1], lineno, pos + 1)
            return end + 1

        pending = _PendingString(quote, lineno, pos + 1, "")
        return self._continue_string(lineno, line, pos, pending)

    def _continue_string(self, lineno, line, pos, pending):
        """
        Handle a literal left open at the end of a line: carry it over if
        the line ends in '&', otherwise the literal is unterminated.
        """
        text = line.rstrip()
        if text.endswith("&") and len(text) - 1 >= pos:
            amp = len(text) - 1
            pending.text += line[pos:amp]
            self._emit(TokenKind.CONTINUATION, "&", lineno, amp + 1)
            self._pending_string = pending
            self._last_ampersand = (lineno, amp + 1)
            return None
        self._pending_string = None
        raise LexError(
            f"Unterminated character literal (opened with {pending.quote} "
            f"on line {pending.line})",
            lineno,
            pos + 1,
        )

    def _resume_string(self, lineno, line, first):
        pending = self._pending_string
        pos = first
        if line[pos] == "&":
            self._emit(TokenKind.CONTINUATION, "&", lineno, pos + 1)
            pos += 1
        end = self._closing_quote(line, pos, pending.quote)
        if end is None:
            return self._continue_string(lineno, line, pos, pending)
        self._emit(
            TokenKind.STRING,
            pending.text + line[pos:end + 1],
            pending.line,
            pending.column,
            lineno,
            end + 1,
        )
        self._pending_string = None
        return end + 1


def tokenize_lines(lines: List[str]) -> TokenizedSource:
    """Tokenize the physical lines of one file."""
    return FortranTokenizer(lines).run()
