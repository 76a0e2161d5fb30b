# *****************************COPYRIGHT*******************************
# (C) Crown copyright Met Office. All rights reserved.
# For further details please refer to the file LICENSE
# which you should have received as part of this distribution.
# *****************************COPYRIGHT*******************************
"""
Structural scanner for free-form Fortran.

Works statement by statement over the tokenizer output and recovers just
enough structure for the style rules: program units, procedures and their
dummy arguments, declarations, USE statements, interface blocks, derived
types and the public/private overrides of a module. No expressions are
evaluated.

Boundaries are matched with a single stack. Besides program units and
procedures the stack also holds the block constructs (DO, IF ... THEN,
SELECT and friends) so that the scanner can hand the rules a nesting depth
for every statement. A closer that doesn't match, or an opener left open
at the end of the file, is recorded as a StructuralError and scanning
carries on with whatever was recovered.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .errors import StructuralError
from .search_lists import (
    block_constructs,
    executable_keywords,
    fused_end_keywords,
    intrinsic_types,
    procedure_prefixes,
    side_effect_keywords,
    specification_keywords,
)
from .tokenizer import Token, TokenKind, TokenizedSource

logger = logging.getLogger(__name__)

UNIT_KINDS = ("program", "module", "submodule")
PROCEDURE_KINDS = ("function", "subroutine")
SCOPE_KINDS = UNIT_KINDS + PROCEDURE_KINDS
CLOSABLE_KINDS = set(SCOPE_KINDS) | {"interface", "type"} | block_constructs

OPENING_BRACKETS = ("(", "(/", "[")
CLOSING_BRACKETS = (")", "/)", "]")


@dataclass
class UseStatement:
    """A USE statement. ``only`` is None when there is no ONLY clause."""

    module: str
    token: Token
    name_token: Token
    only: Optional[List[str]] = None
    intrinsic: bool = False

    @property
    def has_only(self) -> bool:
        return self.only is not None


@dataclass
class Argument:
    name: str
    token: Token
    intent: Optional[str] = None
    is_procedure: bool = False


@dataclass
class Declaration:
    """One entity declared by a type declaration statement."""

    name: str
    token: Token
    type_spec: str
    kind: Optional[str] = None
    attributes: List[str] = field(default_factory=list)
    intent: Optional[str] = None
    dimension: List[Token] = field(default_factory=list)
    allocatable: bool = False
    pointer: bool = False
    save: bool = False
    parameter: bool = False
    automatic: bool = False
    initialized: bool = False
    literal_kinds: List[Tuple[str, Token]] = field(default_factory=list)
    visibility: Optional[str] = None


@dataclass
class Procedure:
    """A function or subroutine, with what the rules need from its body."""

    kind: str
    name: str
    token: Token
    start_line: int
    end_line: int = 0
    prefixes: List[str] = field(default_factory=list)
    arguments: List[Argument] = field(default_factory=list)
    result: Optional[str] = None
    visibility: str = "public"
    module: Optional[str] = None
    in_interface: bool = False
    has_implicit_none: bool = False
    uses: List[UseStatement] = field(default_factory=list)
    declarations: List[Declaration] = field(default_factory=list)
    children: List["Procedure"] = field(default_factory=list)
    interfaces: List["InterfaceBlock"] = field(default_factory=list)
    save_statements: List[Token] = field(default_factory=list)
    assignments: List[Tuple[str, Token]] = field(default_factory=list)
    io_statements: List[Tuple[str, Token, Optional[str]]] = field(
        default_factory=list
    )

    @property
    def naming_prefix(self) -> Optional[str]:
        """Prefix a public name must carry: the owning module plus '_'."""
        if self.module is None:
            return None
        return f"{self.module.lower()}_"

    @property
    def declared_pure(self) -> bool:
        return "pure" in self.prefixes or "elemental" in self.prefixes

    @property
    def is_pure(self) -> bool:
        """Best effort: no side effect this scanner could see."""
        return not self.side_effects()

    def argument(self, name: str) -> Optional[Argument]:
        name = name.lower()
        for argument in self.arguments:
            if argument.name == name:
                return argument
        return None

    def local_names(self) -> Set[str]:
        arguments = {a.name for a in self.arguments}
        return {d.name for d in self.declarations} - arguments

    def side_effects(self, host_variables=()) -> List[Tuple[Token, str]]:
        """
        Statements in this body with an effect visible outside it:
        assignment to a dummy argument that isn't intent(out) or
        intent(inout), assignment to a host variable, and external I/O or
        STOP. Calls, pointer aliasing and the like aren't followed.
        """
        effects = []
        local = self.local_names()
        own_result = (self.result or self.name).lower()
        for name, token in self.assignments:
            argument = self.argument(name)
            if argument is not None:
                if argument.intent not in ("out", "inout"):
                    intent = (f"intent({argument.intent})"
                              if argument.intent else "no intent")
                    effects.append((
                        token,
                        f"assigns to dummy argument '{name}' declared "
                        f"with {intent}",
                    ))
            elif (name in host_variables and name not in local
                  and name != own_result):
                effects.append(
                    (token, f"assigns to host variable '{name}'")
                )
        for keyword, token, unit in self.io_statements:
            if keyword in ("read", "write") and unit in local:
                # Internal file: a local character variable.
                continue
            effects.append(
                (token, f"executes a {keyword.upper()} statement")
            )
        return effects


@dataclass
class InterfaceBlock:
    name: Optional[str]
    token: Token
    abstract: bool = False
    procedures: List[Procedure] = field(default_factory=list)
    module_procedures: List[str] = field(default_factory=list)


@dataclass
class DerivedType:
    name: str
    token: Token
    visibility: Optional[str] = None


@dataclass
class ProgramUnit:
    """A program, module or submodule."""

    kind: str
    name: str
    token: Token
    start_line: int
    end_line: int = 0
    uses: List[UseStatement] = field(default_factory=list)
    default_visibility: Optional[str] = None
    default_token: Optional[Token] = None
    public_names: Dict[str, Token] = field(default_factory=dict)
    private_names: Dict[str, Token] = field(default_factory=dict)
    procedures: List[Procedure] = field(default_factory=list)
    declarations: List[Declaration] = field(default_factory=list)
    derived_types: List[DerivedType] = field(default_factory=list)
    interfaces: List[InterfaceBlock] = field(default_factory=list)
    other_symbols: Set[str] = field(default_factory=set)
    save_statements: List[Token] = field(default_factory=list)
    has_implicit_none: bool = False
    contains_line: Optional[int] = None

    @property
    def is_module(self) -> bool:
        return self.kind in ("module", "submodule")

    def visibility_of(self, name: str) -> str:
        name = name.lower()
        if name in self.private_names:
            return "private"
        if name in self.public_names:
            return "public"
        return self.default_visibility or "public"

    def symbols(self) -> Set[str]:
        """Every name this unit defines or imports through an ONLY list."""
        names = {p.name.lower() for p in self.procedures}
        names |= {d.name for d in self.declarations}
        names |= {t.name.lower() for t in self.derived_types}
        names |= {i.name for i in self.interfaces if i.name}
        names |= self.other_symbols
        for use in self.uses:
            if use.only:
                names |= set(use.only)
        return names

    def public_symbols(self) -> Set[str]:
        own = {p.name.lower() for p in self.procedures}
        own |= {d.name for d in self.declarations}
        own |= {t.name.lower() for t in self.derived_types}
        own |= {i.name for i in self.interfaces if i.name}
        own |= self.other_symbols
        public = {name for name in own
                  if self.visibility_of(name) == "public"}
        return public | set(self.public_names)


@dataclass
class ScanResult:
    """The recovered structure of one file plus the per-line depth."""

    units: List[ProgramUnit] = field(default_factory=list)
    external_procedures: List[Procedure] = field(default_factory=list)
    top_level: list = field(default_factory=list)
    line_depths: List[Optional[int]] = field(default_factory=list)
    errors: List[StructuralError] = field(default_factory=list)
    misplaced_uses: List[UseStatement] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.errors)

    def procedures(self):
        """Every procedure in the file, including internal and interface
        bodies, as (procedure, owning unit or None) pairs."""
        def walk(procedures, unit):
            for procedure in procedures:
                yield procedure, unit
                yield from walk(procedure.children, unit)
                for interface in procedure.interfaces:
                    yield from walk(interface.procedures, unit)

        for unit in self.units:
            yield from walk(unit.procedures, unit)
            for interface in unit.interfaces:
                yield from walk(interface.procedures, unit)
        yield from walk(self.external_procedures, None)


@dataclass
class _Frame:
    kind: str
    name: str
    token: Token
    node: object = None
    spec_part: bool = True


def matching_bracket(tokens: List[Token], start: int) -> int:
    """Index of the bracket closing the one at ``start`` (or the last)."""
    depth = 0
    for index in range(start, len(tokens)):
        token = tokens[index]
        if token.is_op(*OPENING_BRACKETS):
            depth += 1
        elif token.is_op(*CLOSING_BRACKETS):
            depth -= 1
            if depth == 0:
                return index
    return len(tokens) - 1


def split_top_level(tokens: List[Token], separator: str = ",") \
        -> List[List[Token]]:
    """Split a token run on separators outside any brackets."""
    items = []
    current = []
    depth = 0
    for token in tokens:
        if token.is_op(*OPENING_BRACKETS):
            depth += 1
        elif token.is_op(*CLOSING_BRACKETS):
            depth -= 1
        elif depth == 0 and token.is_op(separator):
            items.append(current)
            current = []
            continue
        current.append(token)
    items.append(current)
    return items


def find_top_level(tokens: List[Token], operator: str) -> Optional[int]:
    depth = 0
    for index, token in enumerate(tokens):
        if token.is_op(*OPENING_BRACKETS):
            depth += 1
        elif token.is_op(*CLOSING_BRACKETS):
            depth -= 1
        elif depth == 0 and token.is_op(operator):
            return index
    return None


def joined(tokens: List[Token]) -> str:
    return "".join(token.text for token in tokens).lower()


def assignment_target(tokens: List[Token]) -> Optional[Token]:
    """
    The base name assigned to if this is an assignment (or pointer
    assignment) statement: a name, then any subscripts or %components,
    then '=' or '=>'.
    """
    if not tokens or not tokens[0].is_name:
        return None
    index = 1
    while index < len(tokens):
        token = tokens[index]
        if token.is_op("("):
            index = matching_bracket(tokens, index) + 1
        elif (token.is_op("%") and index + 1 < len(tokens)
              and tokens[index + 1].is_name):
            index += 2
        elif token.is_op("=", "=>"):
            return tokens[0]
        else:
            return None
    return None


def local_name(item: List[Token]) -> str:
    """Local name from an ONLY/PUBLIC item: 'a => b' gives 'a'."""
    arrow = find_top_level(item, "=>")
    if arrow is not None:
        item = item[:arrow]
    return joined(item)


def closer_kind(tokens: List[Token]):
    """(kind, trailing name tokens) for an END statement, else None.
    A bare END gives an empty kind."""
    first = tokens[0].lower
    if tokens[0].is_name and first in fused_end_keywords:
        return fused_end_keywords[first], tokens[1:]
    if not tokens[0].is_word("end"):
        return None
    if len(tokens) == 1:
        return "", []
    if tokens[1].is_name and tokens[1].lower in CLOSABLE_KINDS:
        return tokens[1].lower, tokens[2:]
    return None


def construct_opener(tokens: List[Token]) -> Optional[str]:
    """Block construct opened by this statement, if any."""
    first = tokens[0].lower if tokens[0].is_name else ""
    count = len(tokens)
    if first == "do":
        if count == 1 or tokens[1].kind != TokenKind.NUMBER:
            return "do"
    elif first == "if":
        if count > 2 and tokens[1].is_op("(") and tokens[-1].is_word("then"):
            return "if"
    elif first in ("select", "selectcase", "selecttype"):
        return "select"
    elif first in ("where", "forall"):
        if count > 1 and tokens[1].is_op("(") \
                and matching_bracket(tokens, 1) == count - 1:
            return first
    elif first == "associate":
        if count > 1 and tokens[1].is_op("("):
            return "associate"
    elif first == "block":
        if count == 1:
            return "block"
    elif first == "critical":
        if count == 1 or tokens[1].is_op("("):
            return "critical"
    elif first == "enum":
        if count > 1 and tokens[1].is_op(","):
            return "enum"
    return None


def type_spec(tokens: List[Token]):
    """
    Parse the type spec opening a declaration or function header.
    Returns (type name, kind parameter or None, index after the spec).
    """
    type_name = tokens[0].lower
    index = 1
    if type_name == "double" and index < len(tokens) and tokens[index].is_name:
        type_name = f"double {tokens[index].lower}"
        index += 1
    kind = None
    if index < len(tokens) and tokens[index].is_op("("):
        close = matching_bracket(tokens, index)
        if type_name not in ("type", "class", "procedure"):
            kind = _kind_selector(type_name, tokens[index + 1:close])
        index = close + 1
    elif (index + 1 < len(tokens) and tokens[index].is_op("*")
          and type_name in intrinsic_types):
        if type_name != "character":
            kind = tokens[index + 1].text
        if tokens[index + 1].is_op("("):
            index = matching_bracket(tokens, index + 1) + 1
        else:
            index += 2
    return type_name, kind, index


def _kind_selector(type_name: str, inner: List[Token]) -> Optional[str]:
    items = split_top_level(inner)
    for item in items:
        if len(item) > 2 and item[0].is_word("kind") and item[1].is_op("="):
            return joined(item[2:])
    if type_name == "character":
        return None
    first = items[0] if items else []
    if first and find_top_level(first, "=") is None:
        return joined(first)
    return None


def is_declaration(tokens: List[Token]) -> bool:
    if not tokens[0].is_name:
        return False
    first = tokens[0].lower
    if first in intrinsic_types:
        return True
    return (first in ("type", "class", "procedure") and len(tokens) > 1
            and tokens[1].is_op("("))


def procedure_header(tokens: List[Token]):
    """
    Recognise a FUNCTION or SUBROUTINE statement, with any prefixes and
    type spec in front of it. Returns None for anything else.
    """
    prefixes = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if not token.is_name:
            return None
        word = token.lower
        if word in ("function", "subroutine"):
            break
        if word in procedure_prefixes:
            prefixes.append(word)
            index += 1
        elif word in intrinsic_types or word in ("type", "class"):
            if word in ("type", "class") and not (
                index + 1 < len(tokens) and tokens[index + 1].is_op("(")
            ):
                return None
            _, _, length = type_spec(tokens[index:])
            index += length
        else:
            return None
    if index + 1 >= len(tokens) or not tokens[index + 1].is_name:
        return None

    kind = tokens[index].lower
    name_token = tokens[index + 1]
    arguments = []
    result = None
    rest = index + 2
    if rest < len(tokens) and tokens[rest].is_op("("):
        close = matching_bracket(tokens, rest)
        for item in split_top_level(tokens[rest + 1:close]):
            if len(item) == 1 and item[0].is_name:
                arguments.append(Argument(item[0].lower, item[0]))
        rest = close + 1
    while rest < len(tokens):
        if (tokens[rest].is_word("result") and rest + 2 < len(tokens)
                and tokens[rest + 1].is_op("(")):
            result = tokens[rest + 2].lower
            rest = matching_bracket(tokens, rest + 1) + 1
        else:
            rest += 1
    return kind, name_token, prefixes, arguments, result


def io_unit(tokens: List[Token]) -> Optional[str]:
    """The unit of a READ/WRITE control list: 'buf', '*', '6', etc."""
    if len(tokens) < 2:
        return None
    if tokens[1].is_op("*"):
        return "*"
    if not tokens[1].is_op("("):
        return None
    close = matching_bracket(tokens, 1)
    items = split_top_level(tokens[2:close])
    if not items or not items[0]:
        return None
    item = items[0]
    if len(item) > 2 and item[0].is_word("unit") and item[1].is_op("="):
        item = item[2:]
    return joined(item)


class StructuralScanner:
    """Scan the statements of one tokenized file."""

    def __init__(self, tokenized: TokenizedSource):
        self.tokenized = tokenized
        self.stack: List[_Frame] = []
        self.result = ScanResult(
            line_depths=[None] * len(tokenized.lines)
        )

    def scan(self) -> ScanResult:
        for statement in self.tokenized.statements():
            self._statement(statement)

        last_line = max(len(self.tokenized.lines), 1)
        while self.stack:
            frame = self.stack.pop()
            self._error(
                f"{frame.kind.upper()} {frame.name} opened on line "
                f"{frame.token.line} is never closed; assuming it ends at "
                "the end of the file",
                frame.token,
                frame.kind,
            )
            self._close(frame, last_line)
        return self.result

    # Stack helpers

    def _scope(self) -> Optional[_Frame]:
        """Innermost program unit or procedure frame."""
        for frame in reversed(self.stack):
            if frame.kind in SCOPE_KINDS:
                return frame
        return None

    def _procedure(self) -> Optional[Procedure]:
        frame = self._scope()
        if frame is not None and frame.kind in PROCEDURE_KINDS:
            return frame.node
        return None

    def _unit(self) -> Optional[ProgramUnit]:
        for frame in reversed(self.stack):
            if frame.kind in UNIT_KINDS:
                return frame.node
        return None

    def _error(self, msg: str, token: Token, construct: str = ""):
        logger.debug(f"[WARN] Line {token.line}: {msg}")
        self.result.errors.append(
            StructuralError(msg, token.line, token.column, construct)
        )

    def _set_depth(self, token: Token, depth: int):
        index = token.line - 1
        if 0 <= index < len(self.result.line_depths) \
                and self.result.line_depths[index] is None:
            self.result.line_depths[index] = depth

    # Statement dispatch

    def _statement(self, tokens: List[Token]):
        first_token = tokens[0]
        if tokens[0].kind == TokenKind.NUMBER:
            tokens = tokens[1:]
        if len(tokens) > 2 and tokens[0].is_name and tokens[1].is_op(":"):
            tokens = tokens[2:]
        if not tokens:
            return

        top = self.stack[-1] if self.stack else None
        depth = len(self.stack)

        if assignment_target(tokens) is not None:
            self._set_depth(first_token, depth)
            self._executable(tokens)
            return

        closer = closer_kind(tokens)
        if closer is not None:
            self._close_statement(closer[0], closer[1], tokens)
            self._set_depth(first_token, len(self.stack))
            return

        if self._is_middle(tokens, top):
            self._set_depth(first_token, max(depth - 1, 0))
            if tokens[0].is_word("contains"):
                self._contains(top, tokens[0])
            return

        self._set_depth(first_token, depth)

        if top is not None and top.kind == "type":
            return
        if top is not None and top.kind == "enum":
            self._enumerator(tokens)
            return
        if top is not None and top.kind == "interface":
            if not self._open_procedure(tokens):
                self._interface_member(tokens, top)
            return

        if (self._open_unit(tokens) or self._open_procedure(tokens)
                or self._open_interface(tokens) or self._open_type(tokens)):
            return

        construct = construct_opener(tokens)
        if construct is not None:
            if construct != "enum":
                self._executable(tokens)
            self.stack.append(_Frame(construct, construct, tokens[0]))
            return

        self._other(tokens)

    def _is_middle(self, tokens: List[Token], top: Optional[_Frame]) -> bool:
        if top is None or not tokens[0].is_name:
            return False
        first = tokens[0].lower
        second = tokens[1].lower if len(tokens) > 1 else ""
        if first == "contains":
            return top.kind in SCOPE_KINDS or top.kind == "type"
        if top.kind == "if":
            return first in ("else", "elseif")
        if top.kind == "where":
            return first == "elsewhere" or (first == "else"
                                            and second == "where")
        if top.kind == "select":
            return (first in ("case", "rank")
                    or (first in ("type", "class")
                        and second in ("is", "default")))
        return False

    # Openers and closers

    def _open_unit(self, tokens: List[Token]) -> bool:
        first = tokens[0].lower
        if first == "program":
            kind = "program"
            name_token = tokens[1] if len(tokens) > 1 else tokens[0]
        elif (first == "module" and len(tokens) == 2 and tokens[1].is_name
              and tokens[1].lower not in ("procedure", "function",
                                          "subroutine")):
            kind = "module"
            name_token = tokens[1]
        elif (first == "submodule" and len(tokens) > 3
              and tokens[1].is_op("(")):
            kind = "submodule"
            close = matching_bracket(tokens, 1)
            if close + 1 >= len(tokens):
                return False
            name_token = tokens[close + 1]
        else:
            return False

        unit = ProgramUnit(kind, name_token.text, name_token, tokens[0].line)
        enclosing = self._scope()
        if enclosing is not None:
            self._error(
                f"{kind.upper()} {unit.name} opened inside "
                f"{enclosing.kind.upper()} {enclosing.name}",
                tokens[0],
                kind,
            )
        else:
            self.result.top_level.append(unit)
        self.result.units.append(unit)
        self.stack.append(_Frame(kind, unit.name, tokens[0], unit))
        return True

    def _open_procedure(self, tokens: List[Token]) -> bool:
        header = procedure_header(tokens)
        if header is None:
            return False
        kind, name_token, prefixes, arguments, result = header
        procedure = Procedure(
            kind=kind,
            name=name_token.text,
            token=name_token,
            start_line=tokens[0].line,
            prefixes=prefixes,
            arguments=arguments,
            result=result,
        )
        for frame in reversed(self.stack):
            if frame.kind == "interface":
                procedure.in_interface = True
                frame.node.procedures.append(procedure)
                break
            if frame.kind in PROCEDURE_KINDS:
                frame.node.children.append(procedure)
                break
            if frame.kind in UNIT_KINDS:
                frame.node.procedures.append(procedure)
                if frame.node.is_module:
                    procedure.module = frame.node.name
                break
        else:
            self.result.external_procedures.append(procedure)
            self.result.top_level.append(procedure)
        self.stack.append(_Frame(kind, procedure.name, tokens[0], procedure))
        return True

    def _open_interface(self, tokens: List[Token]) -> bool:
        abstract = tokens[0].is_word("abstract")
        if abstract:
            tokens = tokens[1:]
        if not tokens or not tokens[0].is_word("interface"):
            return False
        name = joined(tokens[1:]) or None
        interface = InterfaceBlock(name, tokens[0], abstract=abstract)
        scope = self._scope()
        if scope is not None:
            scope.node.interfaces.append(interface)
        self.stack.append(
            _Frame("interface", name or "", tokens[0], interface)
        )
        return True

    def _open_type(self, tokens: List[Token]) -> bool:
        if not tokens[0].is_word("type") or len(tokens) < 2:
            return False
        if tokens[1].is_op("(") or tokens[1].is_word("is"):
            return False
        colons = find_top_level(tokens, "::")
        if colons is not None:
            if colons + 1 >= len(tokens):
                return False
            name_token = tokens[colons + 1]
            attributes = [t.lower for t in tokens[1:colons] if t.is_name]
        else:
            name_token = tokens[1]
            attributes = []
        if not name_token.is_name:
            return False

        visibility = None
        if "public" in attributes:
            visibility = "public"
        elif "private" in attributes:
            visibility = "private"
        derived = DerivedType(name_token.text, name_token, visibility)
        scope = self._scope()
        if scope is not None and scope.kind in UNIT_KINDS:
            scope.node.derived_types.append(derived)
            self._record_access(scope.node, visibility, derived.name,
                                name_token)
        self.stack.append(_Frame("type", derived.name, tokens[0], derived))
        return True

    def _close_statement(self, kind: str, name_tokens: List[Token],
                         tokens: List[Token]):
        index = self._find_open(kind)
        if index is None:
            label = f"END {kind.upper()}" if kind else "END"
            self._error(f"{label} has no matching opening statement",
                        tokens[0], kind)
            return

        while len(self.stack) - 1 > index:
            frame = self.stack.pop()
            self._error(
                f"{frame.kind.upper()} opened on line {frame.token.line} "
                f"is not closed before line {tokens[0].line}",
                frame.token,
                frame.kind,
            )
            self._close(frame, tokens[0].line)

        frame = self.stack.pop()
        if (name_tokens and frame.kind in SCOPE_KINDS
                and name_tokens[0].is_name
                and name_tokens[0].lower != frame.name.lower()):
            self._error(
                f"END {frame.kind.upper()} {name_tokens[0].text} does not "
                f"match {frame.kind.upper()} {frame.name}",
                name_tokens[0],
                frame.kind,
            )
        self._close(frame, tokens[-1].line)

    def _find_open(self, kind: str) -> Optional[int]:
        for index in range(len(self.stack) - 1, -1, -1):
            frame = self.stack[index]
            if kind == "":
                if frame.kind in SCOPE_KINDS:
                    return index
            elif frame.kind == kind:
                return index
            if kind not in SCOPE_KINDS and kind != "" \
                    and frame.kind in SCOPE_KINDS:
                # Constructs don't span procedure or unit boundaries.
                return None
        return None

    def _close(self, frame: _Frame, end_line: int):
        node = frame.node
        if frame.kind in PROCEDURE_KINDS:
            node.end_line = end_line
            for interface in node.interfaces:
                for body in interface.procedures:
                    argument = node.argument(body.name)
                    if argument is not None:
                        argument.is_procedure = True
        elif frame.kind in UNIT_KINDS:
            node.end_line = end_line
            for procedure in node.procedures:
                procedure.visibility = node.visibility_of(procedure.name)

    def _contains(self, top: _Frame, token: Token):
        if top.kind in SCOPE_KINDS:
            top.spec_part = False
            if top.kind in UNIT_KINDS:
                top.node.contains_line = token.line

    # Specification statements

    def _other(self, tokens: List[Token]):
        scope = self._scope()
        first = tokens[0].lower if tokens[0].is_name else ""

        if first == "use":
            self._use(tokens, scope)
        elif first == "implicit":
            if (scope is not None and scope.spec_part and len(tokens) > 1
                    and tokens[1].is_word("none")):
                scope.node.has_implicit_none = True
        elif is_declaration(tokens):
            self._declaration(tokens, scope)
        elif first in ("public", "private"):
            self._access(tokens, scope)
        elif first == "intent":
            self._intent_statement(tokens)
        elif first == "save":
            if scope is not None:
                scope.node.save_statements.append(tokens[0])
        elif first == "external":
            self._external_statement(tokens)
        elif first in specification_keywords:
            pass
        else:
            self._executable(tokens)

    def _use(self, tokens: List[Token], scope: Optional[_Frame]):
        index = 1
        intrinsic = False
        if index < len(tokens) and tokens[index].is_op(","):
            intrinsic = (index + 1 < len(tokens)
                         and tokens[index + 1].is_word("intrinsic"))
            index += 2
        if index < len(tokens) and tokens[index].is_op("::"):
            index += 1
        if index >= len(tokens) or not tokens[index].is_name:
            return
        name_token = tokens[index]
        index += 1

        only = None
        if (index + 2 < len(tokens) and tokens[index].is_op(",")
                and tokens[index + 1].is_word("only")
                and tokens[index + 2].is_op(":")):
            only = [local_name(item)
                    for item in split_top_level(tokens[index + 3:]) if item]

        use = UseStatement(
            module=name_token.text,
            token=tokens[0],
            name_token=name_token,
            only=only,
            intrinsic=intrinsic,
        )
        if scope is None or not scope.spec_part:
            self.result.misplaced_uses.append(use)
            return
        scope.node.uses.append(use)

    def _access(self, tokens: List[Token], scope: Optional[_Frame]):
        if scope is None or scope.kind not in ("module", "submodule"):
            return
        unit = scope.node
        visibility = tokens[0].lower
        rest = tokens[1:]
        if rest and rest[0].is_op("::"):
            rest = rest[1:]
        if not rest:
            unit.default_visibility = visibility
            unit.default_token = tokens[0]
            return
        for item in split_top_level(rest):
            if item:
                self._record_access(unit, visibility, local_name(item),
                                    item[0])

    @staticmethod
    def _record_access(unit: ProgramUnit, visibility: Optional[str],
                       name: str, token: Token):
        if visibility == "public":
            unit.public_names.setdefault(name.lower(), token)
        elif visibility == "private":
            unit.private_names.setdefault(name.lower(), token)

    def _names_after(self, tokens: List[Token]) -> List[Token]:
        colons = find_top_level(tokens, "::")
        rest = tokens[colons + 1:] if colons is not None else tokens[1:]
        return [item[0] for item in split_top_level(rest)
                if item and item[0].is_name]

    def _intent_statement(self, tokens: List[Token]):
        procedure = self._procedure()
        if procedure is None or len(tokens) < 2 or not tokens[1].is_op("("):
            return
        close = matching_bracket(tokens, 1)
        intent = joined(tokens[2:close]).replace(" ", "")
        for token in self._names_after(tokens[close:]):
            argument = procedure.argument(token.lower)
            if argument is not None:
                argument.intent = intent

    def _external_statement(self, tokens: List[Token]):
        procedure = self._procedure()
        if procedure is None:
            return
        for token in self._names_after(tokens):
            argument = procedure.argument(token.lower)
            if argument is not None:
                argument.is_procedure = True

    def _interface_member(self, tokens: List[Token], frame: _Frame):
        if tokens[0].is_word("module") and len(tokens) > 1:
            tokens = tokens[1:]
        if tokens[0].is_word("procedure"):
            frame.node.module_procedures.extend(
                token.lower for token in self._names_after(tokens)
            )

    def _enumerator(self, tokens: List[Token]):
        unit = self._unit()
        if unit is None or not tokens[0].is_word("enumerator"):
            return
        for token in self._names_after(tokens):
            unit.other_symbols.add(token.lower)

    def _declaration(self, tokens: List[Token], scope: Optional[_Frame]):
        if scope is None:
            return
        type_name, kind, index = type_spec(tokens)
        colons = find_top_level(tokens, "::")

        attributes = []
        intent = None
        dimension = []
        if colons is not None and index < colons and tokens[index].is_op(","):
            for item in split_top_level(tokens[index + 1:colons]):
                if not item or not item[0].is_name:
                    continue
                word = item[0].lower
                attributes.append(word)
                if len(item) > 1 and item[1].is_op("("):
                    inner = item[2:matching_bracket(item, 1)]
                    if word == "intent":
                        intent = joined(inner).replace(" ", "")
                    elif word == "dimension":
                        dimension = inner
        entities = tokens[colons + 1:] if colons is not None \
            else tokens[index:]

        procedure = scope.node if scope.kind in PROCEDURE_KINDS else None
        unit = self._unit()
        parameters = self._parameter_names(scope.node, unit)

        for item in split_top_level(entities):
            if not item or not item[0].is_name:
                continue
            declaration = self._entity(
                item, type_name, kind, attributes, intent, dimension
            )
            if declaration.parameter:
                parameters.add(declaration.name)
            if procedure is not None:
                argument = procedure.argument(declaration.name)
                if argument is not None:
                    if intent is not None:
                        argument.intent = intent
                    if type_name == "procedure" or "external" in attributes:
                        argument.is_procedure = True
                elif (declaration.dimension and not declaration.allocatable
                      and not declaration.pointer
                      and not declaration.parameter):
                    declaration.automatic = any(
                        token.kind == TokenKind.IDENTIFIER
                        and token.lower not in parameters
                        for token in declaration.dimension
                    )
            elif scope.kind in ("module", "submodule"):
                self._record_access(scope.node, declaration.visibility,
                                    declaration.name, declaration.token)
            scope.node.declarations.append(declaration)

    @staticmethod
    def _parameter_names(node, unit: Optional[ProgramUnit]) -> Set[str]:
        names = {d.name for d in node.declarations if d.parameter}
        if unit is not None:
            names |= {d.name for d in unit.declarations if d.parameter}
        return names

    @staticmethod
    def _entity(item, type_name, kind, attributes, intent, dimension) \
            -> Declaration:
        name_token = item[0]
        entity_dimension = list(dimension)
        initializer = []
        index = 1
        while index < len(item):
            token = item[index]
            if token.is_op("(", "["):
                close = matching_bracket(item, index)
                if token.is_op("("):
                    entity_dimension = item[index + 1:close]
                index = close + 1
            elif token.is_op("*"):
                if index + 1 < len(item) and item[index + 1].is_op("("):
                    index = matching_bracket(item, index + 1) + 1
                else:
                    index += 2
            elif token.is_op("=", "=>"):
                initializer = item[index + 1:]
                break
            else:
                index += 1

        visibility = None
        if "public" in attributes:
            visibility = "public"
        elif "private" in attributes:
            visibility = "private"

        literal_kinds = []
        for token in initializer:
            if token.kind == TokenKind.NUMBER and "_" in token.text:
                literal_kinds.append(
                    (token.text.split("_", 1)[1].lower(), token)
                )

        return Declaration(
            name=name_token.lower,
            token=name_token,
            type_spec=type_name,
            kind=kind,
            attributes=list(attributes),
            intent=intent,
            dimension=entity_dimension,
            allocatable="allocatable" in attributes,
            pointer="pointer" in attributes,
            save="save" in attributes,
            parameter="parameter" in attributes,
            initialized=bool(initializer),
            literal_kinds=literal_kinds,
            visibility=visibility,
        )

    # Executable statements

    def _executable(self, tokens: List[Token]):
        scope = self._scope()
        if scope is not None:
            scope.spec_part = False
        procedure = self._procedure()
        if procedure is not None:
            self._record_action(tokens, procedure)

    def _record_action(self, tokens: List[Token], procedure: Procedure):
        target = assignment_target(tokens)
        if target is not None:
            procedure.assignments.append((target.lower, target))
            return
        if not tokens[0].is_name:
            return
        first = tokens[0].lower
        if first in ("if", "where", "forall") and len(tokens) > 1 \
                and tokens[1].is_op("("):
            rest = tokens[matching_bracket(tokens, 1) + 1:]
            if rest and not (len(rest) == 1 and rest[0].is_word("then")):
                self._record_action(rest, procedure)
            return
        if first == "error":
            if len(tokens) > 1 and tokens[1].is_word("stop"):
                procedure.io_statements.append(
                    ("error stop", tokens[0], None)
                )
            return
        if first in side_effect_keywords and first in executable_keywords:
            unit = io_unit(tokens) if first in ("read", "write") else None
            procedure.io_statements.append((first, tokens[0], unit))


def scan(tokenized: TokenizedSource) -> ScanResult:
    """Recover the program unit structure of one tokenized file."""
    return StructuralScanner(tokenized).scan()
