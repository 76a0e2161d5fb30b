# *****************************COPYRIGHT*******************************
# (C) Crown copyright Met Office. All rights reserved.
# For further details please refer to the file LICENSE
# which you should have received as part of this distribution.
# *****************************COPYRIGHT*******************************
"""
Unit tests for the style rules
"""

import pytest

from .. import checker_rules as rules
from ..checker_dispatch_tables import CheckerDispatchTables
from ..config import RuleConfig
from ..conformance import SourceFile, check_source


def run_rule(rule, lines, config=None):
    source = SourceFile.from_lines("test.f90", lines)
    return rule.check(source, config or RuleConfig())


def rule_findings(rule_id, lines, config=None):
    return [d for d in check_source("test.f90", lines, config)
            if d.rule == rule_id]


def in_module(*body):
    return ["module test_mod",
            "  implicit none",
            "  private"] + list(body) + ["end module test_mod"]


def in_subroutine(*body):
    return ["module test_mod",
            "  implicit none",
            "contains",
            "  subroutine test_mod_run()"] + list(body) + [
            "  end subroutine test_mod_run",
            "end module test_mod"]


clean_module = [
    "module clean_mod",
    "  use kinds_mod, only: dp",
    "  implicit none",
    "  private",
    "  public :: clean_mod_scale",
    "contains",
    "  function clean_mod_scale(x, factor) result(y)",
    "    real(dp), intent(in) :: x",
    "    real(dp), intent(in) :: factor",
    "    real(dp) :: y",
    "    y = x * factor + 1.0_dp",
    "  end function clean_mod_scale",
    "end module clean_mod",
]


def test_clean_module_has_no_findings():
    assert check_source("clean_mod.f90", clean_module) == []


line_length_data = [
    (["x" * 79], [], "79 characters"),
    (["x" * 80], [80], "80 characters"),
    (["x" * 120], [80], "120 characters, reported once"),
]


@pytest.mark.parametrize("lines, expected_columns",
                         [data[:2] for data in line_length_data],
                         ids=[data[2] for data in line_length_data])
def test_line_length(lines, expected_columns):
    found = run_rule(rules.LineLength(), lines)
    assert [d.column for d in found] == expected_columns


def test_line_length_option():
    config = RuleConfig(max_line_length=100)
    assert run_rule(rules.LineLength(), ["x" * 100], config) == []


tab_data = [
    (["x = 1"], [], "No tabs"),
    (["\tx = 1"], [1], "Leading tab"),
    (["x =\t1\t! two tabs"], [4], "Two tabs, reported once"),
]


@pytest.mark.parametrize("lines, expected_columns",
                         [data[:2] for data in tab_data],
                         ids=[data[2] for data in tab_data])
def test_no_tabs(lines, expected_columns):
    found = run_rule(rules.NoTabs(), lines)
    assert [d.column for d in found] == expected_columns


def test_trailing_whitespace():
    found = run_rule(rules.TrailingWhitespace(), ["x = 1  ", "y = 2"])
    assert [(d.line, d.column) for d in found] == [(1, 6)]


indent_data = [
    (in_module("  integer :: n"), [], "Correct indent"),
    (in_module("    integer :: n"), [4], "Over indented"),
    (["module m", "implicit none", "end module m"], [2], "Not indented"),
    (in_subroutine("      x = 1"), [5], "Body over indented"),
    (in_module("  integer :: a, &", "     b"), [], "Continuation ignored"),
]


@pytest.mark.parametrize("lines, expected_lines",
                         [data[:2] for data in indent_data],
                         ids=[data[2] for data in indent_data])
def test_indent_step(lines, expected_lines):
    found = run_rule(rules.IndentStep(), lines)
    assert [d.line for d in found] == expected_lines


ctor_data = [
    (["x = (/ 1, 2 /)"], 1, "Old style constructor"),
    (["x = [1, 2]"], 0, "Square bracket constructor"),
    (["x = (a/b)"], 0, "Division in parentheses"),
]


@pytest.mark.parametrize("lines, expected_result",
                         [data[:2] for data in ctor_data],
                         ids=[data[2] for data in ctor_data])
def test_array_constructor_style(lines, expected_result):
    assert len(run_rule(rules.ArrayConstructorStyle(), lines)) == \
        expected_result


slice_data = [
    (["x = a(i, :)"], 1, "Scalar before colon"),
    (["x = a(:, i)"], 0, "Colon before scalar"),
    (["x = a(i, j)"], 0, "No sections"),
    (["x = a(1, 2:n)"], 1, "Scalar before a bounded section"),
    (["x = a(i, ::2)"], 1, "Scalar before a strided section"),
    (["x = b(:, :, k)"], 0, "Contiguous leading sections"),
    (["allocate(a(n, 3))"], 0, "Allocate bounds"),
    (["real(dp) :: c(3, :)"], 0, "Declaration"),
    (["call foo(b(j, :))"], 1, "Nested reference"),
]


@pytest.mark.parametrize("lines, expected_result",
                         [data[:2] for data in slice_data],
                         ids=[data[2] for data in slice_data])
def test_slice_stride_order(lines, expected_result):
    assert len(run_rule(rules.SliceStrideOrder(), lines)) == expected_result


literal_data = [
    (["x = 1.0"], 1, "No kind suffix"),
    (["x = 1.0_dp"], 0, "Kind suffix"),
    (["x = 1.0d0"], 1, "D exponent"),
    (["x = 2.5e3_wp"], 0, "Exponent and kind"),
    (["n = 3"], 0, "Integer"),
    (["if (1.eq.n) x = 1.0_dp"], 0, "Integer before dotted operator"),
    (["10 format(f10.3)"], 0, "Format statement"),
    (["s = '1.0'"], 0, "Inside a string"),
]


@pytest.mark.parametrize("lines, expected_result",
                         [data[:2] for data in literal_data],
                         ids=[data[2] for data in literal_data])
def test_literal_kind(lines, expected_result):
    assert len(run_rule(rules.LiteralKind(), lines)) == expected_result


implicit_none_data = [
    (["program p", "end program p"], 1, "Program without"),
    (["program p", "  implicit none", "end program p"], 0, "Program with"),
    (["module m", "end module m"], 1, "Module without"),
    (["submodule (parent) child", "end submodule child"], 0,
     "Submodule inherits"),
    (["module m", "contains", "  subroutine s()", "    implicit none",
      "  end subroutine s", "end module m"], 1,
     "Only inside a procedure"),
]


@pytest.mark.parametrize("lines, expected_result",
                         [data[:2] for data in implicit_none_data],
                         ids=[data[2] for data in implicit_none_data])
def test_implicit_none(lines, expected_result):
    assert len(run_rule(rules.ImplicitNone(), lines)) == expected_result


bar_module = [
    "module modname",
    "  implicit none",
    "  private",
    "  public :: bar",
    "contains",
    "  subroutine bar(a, b)",
    "    integer :: a",
    "    integer :: b",
    "    a = b",
    "  end subroutine bar",
    "end module modname",
]


def test_intent_required_once_per_argument():
    found = rule_findings("INTENT-REQUIRED", bar_module)
    assert [(d.line, d.column) for d in found] == [(6, 18), (6, 21)]


def test_naming_prefix_once():
    found = rule_findings("NAMING-PREFIX", bar_module)
    assert len(found) == 1
    assert found[0].line == 6
    assert "modname_" in found[0].message


def test_naming_prefix_ignores_private_procedures():
    lines = in_module(
        "contains",
        "  subroutine helper()",
        "  end subroutine helper",
    )
    assert rule_findings("NAMING-PREFIX", lines) == []


def test_intent_not_required_for_dummy_procedures():
    lines = in_module(
        "contains",
        "  subroutine test_mod_apply(f, g, x)",
        "    procedure(op_iface) :: f",
        "    external :: g",
        "    real(dp), intent(inout) :: x",
        "  end subroutine test_mod_apply",
    )
    assert rule_findings("INTENT-REQUIRED", lines) == []


purity_module = [
    "module counter_mod",
    "  implicit none",
    "  private",
    "  public :: counter_mod_next, counter_mod_reset",
    "  integer :: calls",
    "contains",
    "  function counter_mod_next(step) result(total)",
    "    integer, intent(in) :: step",
    "    integer :: total",
    "    character(len=16) :: buffer",
    "    calls = calls + step",
    "    write(buffer, '(i0)') step",
    "    print *, buffer",
    "    total = step + 1",
    "  end function counter_mod_next",
    "  subroutine counter_mod_reset()",
    "    calls = 0",
    "    print *, 'reset'",
    "  end subroutine counter_mod_reset",
    "end module counter_mod",
]


def test_purity_side_effects():
    found = rule_findings("PURITY-SIDE-EFFECT", purity_module)
    assert [d.line for d in found] == [11, 13]
    assert "calls" in found[0].message


def test_purity_assignment_to_intent_in():
    lines = in_module(
        "contains",
        "  function test_mod_f(x) result(y)",
        "    real(dp), intent(in) :: x",
        "    real(dp) :: y",
        "    x = 2.0_dp",
        "    y = x",
        "  end function test_mod_f",
    )
    found = rule_findings("PURITY-SIDE-EFFECT", lines)
    assert len(found) == 1
    assert "intent(in)" in found[0].message


def test_purity_names_pure_functions():
    lines = in_module(
        "  integer :: calls",
        "contains",
        "  pure function test_mod_f(x) result(y)",
        "    real(dp), intent(in) :: x",
        "    real(dp) :: y",
        "    calls = 1",
        "    y = x",
        "  end function test_mod_f",
    )
    found = rule_findings("PURITY-SIDE-EFFECT", lines)
    assert len(found) == 1
    assert found[0].message.startswith("Pure function 'test_mod_f'")


def test_purity_intent_out_is_allowed():
    lines = in_module(
        "contains",
        "  function test_mod_f(x, err) result(y)",
        "    real(dp), intent(in) :: x",
        "    integer, intent(out) :: err",
        "    real(dp) :: y",
        "    err = 0",
        "    y = x",
        "  end function test_mod_f",
    )
    assert rule_findings("PURITY-SIDE-EFFECT", lines) == []


visibility_data = [
    (in_module("  public :: foo", "  integer :: foo"), 0,
     "Private default with an existing public name"),
    (["module m", "  implicit none", "  integer :: counter",
      "end module m"], 1, "Implicit public default"),
    (["module m", "  implicit none", "  public", "  integer :: counter",
      "end module m"], 1, "Bare public default"),
    (in_module("  integer :: counter"), 1, "Nothing public"),
    (in_module("  public :: missing", "  integer :: foo"), 1,
     "Public name not defined"),
    (in_module("  public :: missing", "  use other_mod"), 0,
     "Public name may come from an unrestricted use"),
    (in_module("  use other_mod, only: thing", "  public :: thing"), 0,
     "Public name from an only list"),
    (["module m", "  implicit none", "  public :: foo",
      "  integer :: foo", "end module m"], 0,
     "Every name explicitly public"),
]


@pytest.mark.parametrize("lines, expected_result",
                         [data[:2] for data in visibility_data],
                         ids=[data[2] for data in visibility_data])
def test_visibility_explicit(lines, expected_result):
    assert len(rule_findings("VISIBILITY-EXPLICIT", lines)) == \
        expected_result


use_only_data = [
    (in_module("  use other_mod"), RuleConfig(), 1, "No only list"),
    (in_module("  use other_mod, only: x"), RuleConfig(), 0, "Only list"),
    (in_module("  use progvars"), RuleConfig(), 0,
     "Program variable module"),
    (in_module("  use other_mod"), RuleConfig(use_only_exempt=["OTHER_MOD"]),
     0, "Configured exemption"),
    (in_subroutine("    use helpers"), RuleConfig(), 1,
     "Inside a procedure"),
]


@pytest.mark.parametrize("lines, config, expected_result",
                         [data[:3] for data in use_only_data],
                         ids=[data[3] for data in use_only_data])
def test_use_only(lines, config, expected_result):
    assert len(rule_findings("USE-ONLY", lines, config)) == expected_result


def test_use_placement():
    lines = in_subroutine(
        "    call setup()",
        "    use late_mod, only: x",
    )
    found = rule_findings("USE-PLACEMENT", lines)
    assert [d.line for d in found] == [6]


def test_one_module_per_file_fires_once_at_second():
    lines = [
        "module first_mod",
        "  implicit none",
        "end module first_mod",
        "module second_mod",
        "  implicit none",
        "end module second_mod",
        "module third_mod",
        "  implicit none",
        "end module third_mod",
    ]
    diagnostics = check_source("two.f90", lines)
    found = [d for d in diagnostics if d.rule == "ONE-MODULE-PER-FILE"]
    assert len(found) == 1
    assert found[0].line == 4
    assert not [d for d in diagnostics if d.rule == "STRUCTURE"]


def test_one_module_per_file_with_no_units():
    found = rule_findings("ONE-MODULE-PER-FILE", ["! nothing here"])
    assert [(d.line, d.column) for d in found] == [(1, 1)]


def setup_module_lines(*public_names):
    lines = [
        "module setup",
        "  implicit none",
        "  private",
        f"  public :: {', '.join(public_names)}",
        "contains",
    ]
    for name in ("setup_init", "setup_cleanup", "setup_extra"):
        lines += [f"  subroutine {name}()", f"  end subroutine {name}"]
    return lines + ["end module setup"]


setup_data = [
    (setup_module_lines("setup_init", "setup_cleanup"), 0, "Exact contract"),
    (setup_module_lines("setup_init", "setup_cleanup", "setup_extra"), 1,
     "Extra public procedure"),
    (setup_module_lines("setup_init"), 1, "Missing cleanup"),
]


@pytest.mark.parametrize("lines, expected_result",
                         [data[:2] for data in setup_data],
                         ids=[data[2] for data in setup_data])
def test_setup_contract(lines, expected_result):
    assert len(rule_findings("SETUP-CONTRACT", lines)) == expected_result


def test_setup_contract_only_applies_to_the_setup_module():
    lines = [line.replace("module setup", "module other")
             for line in setup_module_lines("setup_extra")]
    assert rule_findings("SETUP-CONTRACT", lines) == []


decl_kind_data = [
    (in_module("  real :: x"), 1, "Real without kind"),
    (in_module("  real(dp) :: x"), 0, "Real with kind"),
    (in_module("  complex :: z"), 1, "Complex without kind"),
    (in_module("  double precision :: y"), 1, "Double precision"),
    (in_module("  integer :: n"), 0, "Integer"),
    (in_module("  real(dp), parameter :: c = 1.0_sp"), 1,
     "Initializer kind differs"),
    (in_module("  real(dp), parameter :: c = 1.0_dp"), 0,
     "Initializer kind matches"),
]


@pytest.mark.parametrize("lines, expected_result",
                         [data[:2] for data in decl_kind_data],
                         ids=[data[2] for data in decl_kind_data])
def test_declaration_kind(lines, expected_result):
    assert len(rule_findings("DECL-KIND", lines)) == expected_result


no_save_data = [
    (in_module("  integer, save :: n"), 1, "Save attribute"),
    (in_module("  save"), 1, "Save statement"),
    (in_module("  integer :: n = 0"), 0, "Module variable initialised"),
    (in_subroutine("    integer :: count = 0"), 1, "Implicit save"),
    (in_subroutine("    integer, parameter :: k = 1"), 0, "Parameter"),
]


@pytest.mark.parametrize("lines, expected_result",
                         [data[:2] for data in no_save_data],
                         ids=[data[2] for data in no_save_data])
def test_no_save(lines, expected_result):
    assert len(rule_findings("NO-SAVE", lines)) == expected_result


def test_automatic_array():
    lines = in_module(
        "contains",
        "  subroutine test_mod_work(n, a)",
        "    integer, intent(in) :: n",
        "    real(dp), intent(inout) :: a(n)",
        "    real(dp) :: scratch(n)",
        "    real(dp), allocatable :: heap(:)",
        "  end subroutine test_mod_work",
    )
    found = rule_findings("AUTOMATIC-ARRAY", lines)
    assert [d.line for d in found] == [8]


def test_partial_scan_marks_tree_findings():
    lines = [
        "module broken",
        "contains",
        "  subroutine s()",
        "    do i = 1, 2",
        "  end subroutine s",
        "end module broken",
    ]
    diagnostics = check_source("broken.f90", lines)
    structure = [d for d in diagnostics if d.rule == "STRUCTURE"]
    implicit = [d for d in diagnostics if d.rule == "IMPLICIT-NONE"]
    assert len(structure) == 1
    assert not structure[0].partial
    assert len(implicit) == 1
    assert implicit[0].partial
    assert implicit[0].message.endswith("(partial scan)")


def test_lex_errors_are_reported():
    found = rule_findings("LEX-ERROR", in_module("  character :: s = 'abc"))
    assert [(d.line, d.severity) for d in found] == [(4, "error")]


def test_dispatch_tables_group_rules():
    tables = CheckerDispatchTables()
    assert "LINE-LENGTH" in tables.get_line_rules()
    assert "SLICE-STRIDE-ORDER" in tables.get_token_rules()
    assert "ONE-MODULE-PER-FILE" in tables.get_tree_rules()
    assert set(tables.get_internal_rules()) == {
        "LEX-ERROR", "STRUCTURE", "IO-ERROR", "CONFIG-ERROR",
        "INTERNAL-ERROR",
    }
    grouped = {}
    for table in (tables.get_line_rules(), tables.get_token_rules(),
                  tables.get_tree_rules(), tables.get_internal_rules()):
        grouped.update(table)
    assert grouped.keys() == tables.all_rules().keys()
    assert tables.default_severities()["DECL-KIND"] == "warning"


def test_rules_dispatched_by_representation():
    order = [rules.LINES, rules.TOKENS, rules.TREE, rules.INTERNAL]
    seen = [rule.representation for _, rule in
            CheckerDispatchTables().rules_in_dispatch_order()]
    assert seen == sorted(seen, key=order.index)
    assert len(seen) == len(CheckerDispatchTables().all_rules())
