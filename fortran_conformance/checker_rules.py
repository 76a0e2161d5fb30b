# *****************************COPYRIGHT*******************************
# (C) Crown copyright Met Office. All rights reserved.
# For further details please refer to the file LICENSE
# which you should have received as part of this distribution.
# *****************************COPYRIGHT*******************************

"""
The style rules. Each rule is a small class which looks at one
representation of a file (its raw lines, its tokens or the scanned
structure) and returns Diagnostics. Rules never modify what they are
given; severity overrides and the partial-scan marking are applied by the
caller.
"""

from abc import ABC, abstractmethod
from typing import Iterator, List, Set, Tuple

from .diagnostics import ERROR, WARNING, Diagnostic
from .scanner import (
    ProgramUnit,
    find_top_level,
    is_declaration,
    matching_bracket,
    split_top_level,
)
from .search_lists import kinded_types, slice_exempt_statements
from .tokenizer import TokenKind

LINES = "lines"
TOKENS = "tokens"
TREE = "tree"
INTERNAL = "internal"

# Declaration type specs which need a kind parameter, including the
# legacy spellings which can't have one.
KIND_REQUIRED_TYPES = kinded_types | {
    "double precision",
    "double complex",
    "doubleprecision",
    "doublecomplex",
}


class StyleRule(ABC):
    """Base class for a rule: an id, a default severity and a check."""

    rule_id: str = ""
    default_severity: str = WARNING
    representation: str = LINES
    needs_structure: bool = False
    title: str = ""

    def diagnostic(self, source, line: int, column: int,
                   message: str) -> Diagnostic:
        return Diagnostic(
            rule=self.rule_id,
            severity=self.default_severity,
            file=source.path,
            line=line,
            column=column,
            message=message,
        )

    def at_token(self, source, token, message: str) -> Diagnostic:
        return self.diagnostic(source, token.line, token.column, message)

    @abstractmethod
    def check(self, source, config) -> List[Diagnostic]:
        """Run the rule over one SourceFile."""


class TreeRule(StyleRule):
    representation = TREE
    needs_structure = True


# Helpers for walking the scanned structure.

def all_uses(scan) -> Iterator:
    for unit in scan.units:
        yield from unit.uses
    for procedure, _ in scan.procedures():
        yield from procedure.uses


def all_declarations(scan) -> Iterator[Tuple[object, object]]:
    """(declaration, owning unit or procedure) pairs."""
    for unit in scan.units:
        for declaration in unit.declarations:
            yield declaration, unit
    for procedure, _ in scan.procedures():
        for declaration in procedure.declarations:
            yield declaration, procedure


def modules(scan) -> Iterator[ProgramUnit]:
    for unit in scan.units:
        if unit.kind == "module":
            yield unit


def symbol_token(unit: ProgramUnit, name: str):
    """Token where a module name is defined or made public."""
    if name in unit.public_names:
        return unit.public_names[name]
    for procedure in unit.procedures:
        if procedure.name.lower() == name:
            return procedure.token
    for declaration in unit.declarations:
        if declaration.name == name:
            return declaration.token
    for derived in unit.derived_types:
        if derived.name.lower() == name:
            return derived.token
    for interface in unit.interfaces:
        if interface.name == name:
            return interface.token
    return unit.token


def name_list(names, limit: int = 5) -> str:
    names = sorted(names)
    text = ", ".join(names[:limit])
    if len(names) > limit:
        text += f" and {len(names) - limit} more"
    return text


# Line rules

class LineLength(StyleRule):
    """Line longer than the maximum, reported once at the first column
    past it."""

    rule_id = "LINE-LENGTH"
    default_severity = ERROR
    title = "Line longer than the maximum line length"

    def check(self, source, config) -> List[Diagnostic]:
        limit = config.max_line_length
        found = []
        for count, line in enumerate(source.lines):
            if len(line) > limit:
                found.append(self.diagnostic(
                    source, count + 1, limit + 1,
                    f"Line is {len(line)} characters long; the maximum is "
                    f"{limit}",
                ))
        return found


class NoTabs(StyleRule):
    rule_id = "NO-TABS"
    default_severity = ERROR
    title = "Line includes tab character"

    def check(self, source, config) -> List[Diagnostic]:
        found = []
        for count, line in enumerate(source.lines):
            column = line.find("\t")
            if column != -1:
                found.append(self.diagnostic(
                    source, count + 1, column + 1,
                    "Tab character found; indent with spaces",
                ))
        return found


class TrailingWhitespace(StyleRule):
    rule_id = "TRAILING-WHITESPACE"
    default_severity = WARNING
    title = "Trailing whitespace"

    def check(self, source, config) -> List[Diagnostic]:
        found = []
        for count, line in enumerate(source.lines):
            stripped = line.rstrip()
            if stripped != line:
                found.append(self.diagnostic(
                    source, count + 1, len(stripped) + 1,
                    "Line ends in whitespace",
                ))
        return found


class IndentStep(StyleRule):
    """
    The first line of every statement should be indented by two spaces per
    level of nesting. Continuation lines are left alone, as are lines
    whose indent includes a tab (NO-TABS covers those).
    """

    rule_id = "INDENT-STEP"
    default_severity = WARNING
    needs_structure = True
    title = "Statement not indented by two spaces per nesting level"

    def check(self, source, config) -> List[Diagnostic]:
        found = []
        indents = source.tokenized.indents
        for count, depth in enumerate(source.scan.line_depths):
            if depth is None or indents[count] is None:
                continue
            expected = 2 * depth
            if indents[count] != expected:
                found.append(self.diagnostic(
                    source, count + 1, indents[count] + 1,
                    f"Indented by {indents[count]} spaces; expected "
                    f"{expected} at nesting depth {depth}",
                ))
        return found


# Token rules

class ArrayConstructorStyle(StyleRule):
    rule_id = "ARRAY-CTOR-STYLE"
    default_severity = WARNING
    representation = TOKENS
    title = "Used (/ 1,2,3 /) form of array constructor, rather than [1,2,3]"

    def check(self, source, config) -> List[Diagnostic]:
        return [
            self.at_token(source, token,
                          "Use [ ... ] rather than (/ ... /) for array "
                          "constructors")
            for token in source.tokenized.tokens
            if token.is_op("(/")
        ]


class SliceStrideOrder(StyleRule):
    """
    Fortran arrays are column major, so a section such as a(i, :) walks
    memory with a stride. Flag any array reference in which a non-colon
    subscript comes before a colon subscript.
    """

    rule_id = "SLICE-STRIDE-ORDER"
    default_severity = WARNING
    representation = TOKENS
    title = "Array section takes a scalar subscript before a ':' subscript"

    def check(self, source, config) -> List[Diagnostic]:
        found = []
        for statement in source.tokenized.statements():
            if statement[0].kind == TokenKind.NUMBER:
                statement = statement[1:]
            if not statement:
                continue
            if statement[0].lower in slice_exempt_statements \
                    or is_declaration(statement):
                continue
            for index, token in enumerate(statement[:-1]):
                if token.kind != TokenKind.IDENTIFIER \
                        or not statement[index + 1].is_op("("):
                    continue
                close = matching_bracket(statement, index + 1)
                subscripts = split_top_level(statement[index + 2:close])
                if len(subscripts) < 2:
                    continue
                seen_scalar = False
                for subscript in subscripts:
                    is_section = (find_top_level(subscript, ":") is not None
                                  or find_top_level(subscript, "::")
                                  is not None)
                    if is_section and seen_scalar:
                        found.append(self.at_token(
                            source, token,
                            f"Section of '{token.text}' has a scalar "
                            "subscript before a ':' subscript; put the "
                            "contiguous dimension first",
                        ))
                        break
                    if not is_section:
                        seen_scalar = True
        return found


class LiteralKind(StyleRule):
    rule_id = "LITERAL-KIND"
    default_severity = WARNING
    representation = TOKENS
    title = "Real literal constant without a _kind suffix"

    def check(self, source, config) -> List[Diagnostic]:
        found = []
        for statement in source.tokenized.statements():
            words = [t for t in statement[:2] if t.is_name]
            if words and words[0].is_word("format"):
                continue
            for token in statement:
                if token.kind != TokenKind.NUMBER:
                    continue
                body, _, kind = token.text.partition("_")
                lowered = body.lower()
                if not ("." in body or any(c in lowered for c in "edq")):
                    continue
                if "d" in lowered or "q" in lowered:
                    found.append(self.at_token(
                        source, token,
                        f"Real literal {token.text} uses a D or Q exponent; "
                        "use E with a _kind suffix",
                    ))
                elif not kind:
                    found.append(self.at_token(
                        source, token,
                        f"Real literal {token.text} has no _kind suffix",
                    ))
        return found


# Tree rules

class ImplicitNone(TreeRule):
    rule_id = "IMPLICIT-NONE"
    default_severity = ERROR
    title = "Program or module is missing IMPLICIT NONE"

    def check(self, source, config) -> List[Diagnostic]:
        return [
            self.at_token(
                source, unit.token,
                f"{unit.kind.capitalize()} '{unit.name}' has no IMPLICIT "
                "NONE in its specification part",
            )
            for unit in source.scan.units
            if unit.kind in ("program", "module")
            and not unit.has_implicit_none
        ]


class IntentRequired(TreeRule):
    rule_id = "INTENT-REQUIRED"
    default_severity = ERROR
    title = "Dummy argument without an explicit INTENT"

    def check(self, source, config) -> List[Diagnostic]:
        found = []
        for procedure, _ in source.scan.procedures():
            for argument in procedure.arguments:
                if argument.intent is None and not argument.is_procedure:
                    found.append(self.at_token(
                        source, argument.token,
                        f"Dummy argument '{argument.name}' of "
                        f"{procedure.kind} '{procedure.name}' has no "
                        "explicit INTENT",
                    ))
        return found


class PuritySideEffect(TreeRule):
    """
    Functions should have no side effects. Flags assignments to dummy
    arguments that aren't intent(out)/intent(inout), assignments to host
    variables and external I/O or STOP. Purely syntactic, so calls to
    impure procedures and writes through pointers go unnoticed.
    """

    rule_id = "PURITY-SIDE-EFFECT"
    default_severity = WARNING
    title = "Function body has a side effect"

    def check(self, source, config) -> List[Diagnostic]:
        found = []
        for unit in source.scan.units:
            host = {d.name for d in unit.declarations if not d.parameter}
            self._walk(source, unit.procedures, host, found)
        self._walk(source, source.scan.external_procedures, set(), found)
        return found

    def _walk(self, source, procedures, host: Set[str], found: list):
        for procedure in procedures:
            if procedure.kind == "function":
                label = "Pure function" if procedure.declared_pure \
                    else "Function"
                for token, effect in procedure.side_effects(host):
                    found.append(self.at_token(
                        source, token,
                        f"{label} '{procedure.name}' {effect}",
                    ))
            self._walk(source, procedure.children,
                       host | procedure.local_names(), found)


class VisibilityExplicit(TreeRule):
    rule_id = "VISIBILITY-EXPLICIT"
    default_severity = WARNING
    title = "Module visibility not explicit"

    def check(self, source, config) -> List[Diagnostic]:
        found = []
        for unit in modules(source.scan):
            found.extend(self._check_module(source, unit))
        return found

    def _check_module(self, source, unit: ProgramUnit) -> List[Diagnostic]:
        found = []
        if unit.default_visibility != "private":
            implicit = {
                name for name in unit.public_symbols()
                if name not in unit.public_names
            }
            if implicit:
                found.append(self.at_token(
                    source, unit.default_token or unit.token,
                    f"Module '{unit.name}' is not PRIVATE by default and "
                    f"implicitly exports {name_list(implicit)}",
                ))
        elif not unit.public_names:
            found.append(self.at_token(
                source, unit.default_token or unit.token,
                f"Module '{unit.name}' is PRIVATE by default but makes "
                "nothing PUBLIC",
            ))

        if any(not use.has_only for use in unit.uses):
            # Names may come from the unrestricted USE.
            return found
        symbols = unit.symbols()
        for name, token in unit.public_names.items():
            if name not in symbols:
                found.append(self.at_token(
                    source, token,
                    f"PUBLIC name '{name}' is not defined in module "
                    f"'{unit.name}'",
                ))
        return found


class UseOnly(TreeRule):
    rule_id = "USE-ONLY"
    default_severity = ERROR
    title = "USE statement without an ONLY list"

    def check(self, source, config) -> List[Diagnostic]:
        return [
            self.at_token(source, use.token,
                          f"USE {use.module} has no ONLY list")
            for use in all_uses(source.scan)
            if not use.has_only
            and not config.exempt_from_use_only(use.module)
        ]


class UsePlacement(TreeRule):
    rule_id = "USE-PLACEMENT"
    default_severity = ERROR
    title = "USE statement after the specification part"

    def check(self, source, config) -> List[Diagnostic]:
        return [
            self.at_token(
                source, use.token,
                f"USE {use.module} appears after an executable statement "
                "or CONTAINS",
            )
            for use in source.scan.misplaced_uses
        ]


class NamingPrefix(TreeRule):
    rule_id = "NAMING-PREFIX"
    default_severity = WARNING
    title = "Public module procedure not prefixed with the module name"

    def check(self, source, config) -> List[Diagnostic]:
        found = []
        for unit in modules(source.scan):
            for procedure in unit.procedures:
                prefix = procedure.naming_prefix
                if procedure.visibility != "public" or prefix is None:
                    continue
                if not procedure.name.lower().startswith(prefix):
                    found.append(self.at_token(
                        source, procedure.token,
                        f"Public {procedure.kind} '{procedure.name}' should "
                        f"be named with the prefix '{prefix}'",
                    ))
        return found


class OneModulePerFile(TreeRule):
    rule_id = "ONE-MODULE-PER-FILE"
    default_severity = ERROR
    title = "File must hold exactly one top-level program unit"

    def check(self, source, config) -> List[Diagnostic]:
        top_level = source.scan.top_level
        if not top_level:
            return [self.diagnostic(
                source, 1, 1, "File contains no program unit or procedure"
            )]
        if len(top_level) == 1:
            return []
        second = top_level[1]
        return [self.at_token(
            source, second.token,
            f"File holds {len(top_level)} top-level units; "
            f"{second.kind} '{second.name}' should be in a file of its own",
        )]


class SetupContract(TreeRule):
    """The designated setup module may only make public its init and
    cleanup procedures."""

    rule_id = "SETUP-CONTRACT"
    default_severity = ERROR
    title = "Setup module exposes more or less than its init and cleanup"

    def check(self, source, config) -> List[Diagnostic]:
        found = []
        expected = [name.lower() for name in config.setup_procedures]
        for unit in modules(source.scan):
            if unit.name.lower() != config.setup_module.lower():
                continue
            public = unit.public_symbols()
            procedures = {p.name.lower() for p in unit.procedures}
            for name in sorted(public - set(expected)):
                found.append(self.at_token(
                    source, symbol_token(unit, name),
                    f"Setup module '{unit.name}' exposes '{name}'; only "
                    f"{', '.join(expected)} may be public",
                ))
            for name in expected:
                if name not in public or name not in procedures:
                    found.append(self.at_token(
                        source, unit.token,
                        f"Setup module '{unit.name}' does not expose a "
                        f"procedure named '{name}'",
                    ))
        return found


class DeclarationKind(TreeRule):
    rule_id = "DECL-KIND"
    default_severity = WARNING
    title = "Real or complex declaration without a kind parameter"

    def check(self, source, config) -> List[Diagnostic]:
        found = []
        for declaration, _ in all_declarations(source.scan):
            if declaration.type_spec not in KIND_REQUIRED_TYPES:
                continue
            if declaration.kind is None:
                found.append(self.at_token(
                    source, declaration.token,
                    f"'{declaration.name}' is declared "
                    f"{declaration.type_spec.upper()} without a kind "
                    "parameter",
                ))
                continue
            declared = declaration.kind.lower()
            for literal_kind, token in declaration.literal_kinds:
                if literal_kind != declared:
                    found.append(self.at_token(
                        source, token,
                        f"Initializer {token.text} has kind "
                        f"'{literal_kind}' but '{declaration.name}' is "
                        f"declared with kind '{declared}'",
                    ))
        return found


class NoSave(TreeRule):
    rule_id = "NO-SAVE"
    default_severity = WARNING
    title = "SAVE attribute, SAVE statement or implicitly saved local"

    def check(self, source, config) -> List[Diagnostic]:
        found = []
        scan = source.scan
        owners = list(scan.units) + [p for p, _ in scan.procedures()]
        for owner in owners:
            for token in owner.save_statements:
                found.append(self.at_token(source, token,
                                           "SAVE statement used"))
        for declaration, owner in all_declarations(scan):
            if declaration.save:
                found.append(self.at_token(
                    source, declaration.token,
                    f"'{declaration.name}' is declared with the SAVE "
                    "attribute",
                ))
            elif (hasattr(owner, "arguments") and declaration.initialized
                  and not declaration.parameter
                  and not declaration.pointer
                  and owner.argument(declaration.name) is None):
                found.append(self.at_token(
                    source, declaration.token,
                    f"Local variable '{declaration.name}' is initialised "
                    "in its declaration, which implies SAVE",
                ))
        return found


class AutomaticArray(TreeRule):
    rule_id = "AUTOMATIC-ARRAY"
    default_severity = WARNING
    title = "Local automatic array; use an allocatable array"

    def check(self, source, config) -> List[Diagnostic]:
        return [
            self.at_token(
                source, declaration.token,
                f"Local array '{declaration.name}' is an automatic array; "
                "declare it ALLOCATABLE",
            )
            for declaration, _ in all_declarations(source.scan)
            if declaration.automatic
        ]


# Errors raised before or while reading the structure, reported through
# the same channel as the style rules.

class InternalRule(StyleRule):
    representation = INTERNAL
    default_severity = ERROR

    def from_error(self, path: str, error) -> Diagnostic:
        return Diagnostic(
            rule=self.rule_id,
            severity=self.default_severity,
            file=str(path),
            line=error.line,
            column=error.column,
            message=error.msg,
        )

    def check(self, source, config) -> List[Diagnostic]:
        return []


class LexErrors(InternalRule):
    rule_id = "LEX-ERROR"
    title = "Line could not be tokenized"

    def check(self, source, config) -> List[Diagnostic]:
        return [self.from_error(source.path, error)
                for error in source.tokenized.errors]


class StructureErrors(InternalRule):
    rule_id = "STRUCTURE"
    title = "Unit or construct boundaries do not pair up"

    def check(self, source, config) -> List[Diagnostic]:
        return [self.from_error(source.path, error)
                for error in source.scan.errors]


class SourceReadErrors(InternalRule):
    rule_id = "IO-ERROR"
    title = "File could not be read"


class ConfigErrors(InternalRule):
    rule_id = "CONFIG-ERROR"
    title = "Rule configuration is invalid"


class InternalErrors(InternalRule):
    rule_id = "INTERNAL-ERROR"
    title = "Checking the file failed unexpectedly"
