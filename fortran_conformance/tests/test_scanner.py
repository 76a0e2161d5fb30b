# *****************************COPYRIGHT*******************************
# (C) Crown copyright Met Office. All rights reserved.
# For further details please refer to the file LICENSE
# which you should have received as part of this distribution.
# *****************************COPYRIGHT*******************************
"""
Unit tests for the structural scanner
"""

import pytest

from ..scanner import scan
from ..tokenizer import tokenize_lines


def scan_lines(lines):
    return scan(tokenize_lines(lines))


nested_program = [
    "program demo",
    "  implicit none",
    "  integer :: i",
    "  do i = 1, 3",
    "    if (i > 1) then",
    "      print *, i",
    "    else",
    "      print *, 0",
    "    end if",
    "  end do",
    "end program demo",
]


def test_line_depths():
    result = scan_lines(nested_program)
    assert result.line_depths == [0, 1, 1, 1, 2, 3, 2, 3, 2, 1, 0]
    assert result.errors == []
    assert [unit.name for unit in result.units] == ["demo"]
    assert result.units[0].has_implicit_none


def test_depth_skips_continuation_and_comment_lines():
    result = scan_lines([
        "module m",
        "  ! a comment",
        "  integer :: a, &",
        "             b",
        "end module m",
    ])
    assert result.line_depths == [0, None, 1, None, 0]


def test_select_case_depths():
    result = scan_lines([
        "subroutine pick(n)",
        "  integer, intent(in) :: n",
        "  select case (n)",
        "  case (1)",
        "    call one()",
        "  case default",
        "    call other()",
        "  end select",
        "end subroutine pick",
    ])
    assert result.line_depths == [0, 1, 1, 1, 2, 1, 2, 1, 0]
    assert result.errors == []


module_with_procedures = [
    "module modname",
    "  use kinds_mod, only: dp",
    "  implicit none",
    "  private",
    "  public :: modname_run, bar",
    "  integer, parameter :: n = 10",
    "  real(dp), public :: shared",
    "contains",
    "  subroutine modname_run(a, f, m)",
    "    real(kind=dp), intent(in out) :: a",
    "    procedure(op_iface) :: f",
    "    integer, intent(in) :: m",
    "    real(dp) :: work(m)",
    "    real(dp) :: fixed(n)",
    "    real(dp), allocatable, dimension(:) :: heap",
    "  end subroutine modname_run",
    "  function bar(x) result(y)",
    "    real(dp) :: x",
    "    real(dp) :: y",
    "    y = x",
    "  end function bar",
    "  subroutine hidden()",
    "  end subroutine hidden",
    "end module modname",
]


def test_module_structure():
    result = scan_lines(module_with_procedures)
    assert result.errors == []
    unit = result.units[0]
    assert (unit.kind, unit.name) == ("module", "modname")
    assert (unit.start_line, unit.end_line) == (1, 24)
    assert unit.contains_line == 8
    assert unit.default_visibility == "private"
    assert set(unit.public_names) == {"modname_run", "bar", "shared"}
    assert [p.name for p in unit.procedures] == ["modname_run", "bar",
                                                 "hidden"]
    assert [p.visibility for p in unit.procedures] == ["public", "public",
                                                       "private"]
    assert unit.procedures[1].naming_prefix == "modname_"


def test_use_statement():
    use = scan_lines(module_with_procedures).units[0].uses[0]
    assert use.module == "kinds_mod"
    assert use.only == ["dp"]
    assert not use.intrinsic


def test_arguments_and_intents():
    procedure = scan_lines(module_with_procedures).units[0].procedures[0]
    assert [a.name for a in procedure.arguments] == ["a", "f", "m"]
    assert [a.intent for a in procedure.arguments] == ["inout", None, "in"]
    assert [a.is_procedure for a in procedure.arguments] == [False, True,
                                                             False]


def test_declarations():
    procedure = scan_lines(module_with_procedures).units[0].procedures[0]
    declarations = {d.name: d for d in procedure.declarations}
    assert declarations["a"].kind == "dp"
    assert declarations["a"].intent == "inout"
    assert declarations["work"].automatic
    assert not declarations["fixed"].automatic
    assert declarations["heap"].allocatable
    assert not declarations["heap"].automatic


def test_function_result_and_assignments():
    function = scan_lines(module_with_procedures).units[0].procedures[1]
    assert function.kind == "function"
    assert function.result == "y"
    assert [name for name, _ in function.assignments] == ["y"]
    assert function.is_pure


use_data = [
    ("use foo", "foo", None, False, "No only clause"),
    ("use foo, only:", "foo", [], False, "Empty only list"),
    ("use foo, only: a => b, c", "foo", ["a", "c"], False, "Renamed only"),
    ("use, intrinsic :: iso_fortran_env, only: real64",
     "iso_fortran_env", ["real64"], True, "Intrinsic module"),
    ("use :: foo, x => y", "foo", None, False, "Rename without only"),
]


@pytest.mark.parametrize("statement, module, only, intrinsic",
                         [data[:4] for data in use_data],
                         ids=[data[4] for data in use_data])
def test_use_forms(statement, module, only, intrinsic):
    result = scan_lines(["module m", statement, "end module m"])
    use = result.units[0].uses[0]
    assert use.module == module
    assert use.only == only
    assert use.intrinsic == intrinsic


def test_misplaced_use():
    result = scan_lines([
        "module m",
        "  implicit none",
        "contains",
        "  subroutine s()",
        "    implicit none",
        "    x = 1",
        "    use late_mod, only: y",
        "  end subroutine s",
        "end module m",
    ])
    assert [use.module for use in result.misplaced_uses] == ["late_mod"]
    assert result.units[0].procedures[0].uses == []


def test_dummy_procedure_from_interface_body():
    result = scan_lines([
        "subroutine driver(f, x)",
        "  real, intent(in) :: x",
        "  interface",
        "    function f(y)",
        "      real, intent(in) :: y",
        "      real :: f",
        "    end function f",
        "  end interface",
        "end subroutine driver",
    ])
    assert result.errors == []
    assert [p.name for p in result.top_level] == ["driver"]
    driver = result.external_procedures[0]
    assert driver.argument("f").is_procedure
    assert not driver.argument("x").is_procedure
    assert driver.interfaces[0].procedures[0].in_interface


def test_two_top_level_units():
    result = scan_lines([
        "module first_mod",
        "end module first_mod",
        "module second_mod",
        "end module second_mod",
    ])
    assert [unit.name for unit in result.top_level] == ["first_mod",
                                                        "second_mod"]
    assert result.errors == []


def test_unclosed_construct_before_end():
    result = scan_lines([
        "module broken",
        "  implicit none",
        "contains",
        "  subroutine s()",
        "    do i = 1, 2",
        "  end subroutine s",
        "end module broken",
    ])
    assert len(result.errors) == 1
    assert result.errors[0].line == 5
    assert result.errors[0].construct == "do"
    assert result.partial
    assert [p.name for p in result.units[0].procedures] == ["s"]


def test_unclosed_unit_at_end_of_file():
    result = scan_lines(["module m", "  implicit none"])
    assert len(result.errors) == 1
    assert result.units[0].end_line == 2


def test_closer_without_opener():
    result = scan_lines(["end do"])
    assert len(result.errors) == 1
    assert result.errors[0].construct == "do"


def test_end_name_mismatch():
    result = scan_lines(["module right", "end module wrong"])
    assert len(result.errors) == 1
    assert result.units[0].end_line == 2


def test_fused_closers():
    result = scan_lines([
        "module m",
        "contains",
        "  subroutine s()",
        "    do i = 1, 2",
        "    enddo",
        "  endsubroutine s",
        "endmodule m",
    ])
    assert result.errors == []


def test_derived_type_components_are_not_module_declarations():
    result = scan_lines([
        "module shapes",
        "  implicit none",
        "  private",
        "  type, public :: point",
        "    private",
        "    real :: x",
        "  end type point",
        "end module shapes",
    ])
    unit = result.units[0]
    assert unit.declarations == []
    assert [t.name for t in unit.derived_types] == ["point"]
    assert unit.default_visibility == "private"
    assert "point" in unit.public_names


def test_function_side_effects():
    result = scan_lines([
        "module counter_mod",
        "  integer :: calls",
        "contains",
        "  function counter_mod_next(step) result(total)",
        "    integer, intent(in) :: step",
        "    integer :: total",
        "    character(len=16) :: buffer",
        "    calls = calls + step",
        "    write(buffer, '(i0)') step",
        "    if (step > 2) print *, buffer",
        "    total = step + 1",
        "  end function counter_mod_next",
        "end module counter_mod",
    ])
    function = result.units[0].procedures[0]
    effects = function.side_effects({"calls"})
    assert [token.line for token, _ in effects] == [8, 10]
    assert not function.is_pure
