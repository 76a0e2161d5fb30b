# *****************************COPYRIGHT*******************************
# (C) Crown copyright Met Office. All rights reserved.
# For further details please refer to the file LICENSE
# which you should have received as part of this distribution.
# *****************************COPYRIGHT*******************************

"""
Dispatch tables: the registry of rules, keyed by rule id and grouped by
the representation of the file each rule looks at.
"""

from typing import Dict, Iterator, Tuple

from . import checker_rules as rules

RULE_CLASSES = (
    rules.LineLength,
    rules.NoTabs,
    rules.TrailingWhitespace,
    rules.IndentStep,
    rules.ArrayConstructorStyle,
    rules.SliceStrideOrder,
    rules.LiteralKind,
    rules.ImplicitNone,
    rules.IntentRequired,
    rules.PuritySideEffect,
    rules.VisibilityExplicit,
    rules.UseOnly,
    rules.UsePlacement,
    rules.NamingPrefix,
    rules.OneModulePerFile,
    rules.SetupContract,
    rules.DeclarationKind,
    rules.NoSave,
    rules.AutomaticArray,
    rules.LexErrors,
    rules.StructureErrors,
    rules.SourceReadErrors,
    rules.ConfigErrors,
    rules.InternalErrors,
)


class CheckerDispatchTables:
    """Class containing dispatch tables for the Fortran style rules"""

    def __init__(self):
        self._rules = {cls.rule_id: cls() for cls in RULE_CLASSES}

    def _table(self, representation: str) -> Dict[str, rules.StyleRule]:
        return {
            rule_id: rule for rule_id, rule in self._rules.items()
            if rule.representation == representation
        }

    def get_line_rules(self) -> Dict[str, rules.StyleRule]:
        """Rules run over the raw physical lines"""
        return self._table(rules.LINES)

    def get_token_rules(self) -> Dict[str, rules.StyleRule]:
        """Rules run over the token stream"""
        return self._table(rules.TOKENS)

    def get_tree_rules(self) -> Dict[str, rules.StyleRule]:
        """Rules run over the scanned program unit structure"""
        return self._table(rules.TREE)

    def get_internal_rules(self) -> Dict[str, rules.StyleRule]:
        """Lex, structure, read and configuration errors"""
        return self._table(rules.INTERNAL)

    def rules_in_dispatch_order(self) -> Iterator[Tuple[str, rules.StyleRule]]:
        """
        Raw line rules first, then token rules, then the structure based
        rules, and finally the internal error rules.
        """
        for table in (self.get_line_rules(), self.get_token_rules(),
                      self.get_tree_rules(), self.get_internal_rules()):
            yield from table.items()

    def all_rules(self) -> Dict[str, rules.StyleRule]:
        return dict(self._rules)

    def get_rule(self, rule_id: str) -> rules.StyleRule:
        return self._rules[rule_id]

    def default_severities(self) -> Dict[str, str]:
        return {rule_id: rule.default_severity
                for rule_id, rule in self._rules.items()}
