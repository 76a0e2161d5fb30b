# *****************************COPYRIGHT*******************************
# (C) Crown copyright Met Office. All rights reserved.
# For further details please refer to the file LICENSE
# which you should have received as part of this distribution.
# *****************************COPYRIGHT*******************************

"""
Lists of words used by the tokenizer, the structural scanner and the
rules. All entries are lowercase; Fortran is matched case-insensitively.
"""

# Words the tokenizer labels as keywords rather than identifiers. Fortran
# has no reserved words, so the scanner always decides on position; this
# list only drives the token kind.
fortran_keywords = {
    "abstract",
    "allocatable",
    "allocate",
    "associate",
    "block",
    "call",
    "case",
    "character",
    "class",
    "close",
    "complex",
    "contains",
    "contiguous",
    "critical",
    "cycle",
    "data",
    "deallocate",
    "default",
    "dimension",
    "do",
    "double",
    "elemental",
    "else",
    "elseif",
    "elsewhere",
    "end",
    "endassociate",
    "endblock",
    "endcritical",
    "enddo",
    "endenum",
    "endforall",
    "endfunction",
    "endif",
    "endinterface",
    "endmodule",
    "endprogram",
    "endselect",
    "endsubmodule",
    "endsubroutine",
    "endtype",
    "endwhere",
    "enum",
    "error",
    "exit",
    "external",
    "forall",
    "function",
    "go",
    "goto",
    "if",
    "implicit",
    "import",
    "impure",
    "in",
    "inout",
    "integer",
    "intent",
    "interface",
    "intrinsic",
    "logical",
    "module",
    "none",
    "nullify",
    "only",
    "open",
    "optional",
    "out",
    "parameter",
    "pointer",
    "precision",
    "print",
    "private",
    "procedure",
    "program",
    "protected",
    "public",
    "pure",
    "read",
    "real",
    "recursive",
    "result",
    "return",
    "save",
    "select",
    "selectcase",
    "selecttype",
    "stop",
    "submodule",
    "subroutine",
    "target",
    "then",
    "type",
    "use",
    "value",
    "where",
    "while",
    "write",
}

# Intrinsic type names which may open a declaration statement.
intrinsic_types = {
    "integer",
    "real",
    "complex",
    "logical",
    "character",
    "double",
    "doubleprecision",
    "doublecomplex",
}

# Types whose declarations must name a kind parameter.
kinded_types = {"real", "complex"}

# Statements which may appear in a specification part without ending it.
specification_keywords = {
    "abstract",
    "allocatable",
    "asynchronous",
    "bind",
    "class",
    "common",
    "contiguous",
    "data",
    "dimension",
    "enum",
    "enumerator",
    "equivalence",
    "external",
    "format",
    "generic",
    "implicit",
    "import",
    "include",
    "intent",
    "interface",
    "intrinsic",
    "namelist",
    "optional",
    "parameter",
    "pointer",
    "private",
    "procedure",
    "protected",
    "public",
    "save",
    "sequence",
    "target",
    "type",
    "use",
    "value",
    "volatile",
} | intrinsic_types

# Keywords which start an executable statement.
executable_keywords = {
    "allocate",
    "associate",
    "backspace",
    "block",
    "call",
    "close",
    "continue",
    "critical",
    "cycle",
    "deallocate",
    "do",
    "endfile",
    "error",
    "exit",
    "flush",
    "forall",
    "go",
    "goto",
    "if",
    "inquire",
    "nullify",
    "open",
    "print",
    "read",
    "return",
    "rewind",
    "select",
    "selectcase",
    "selecttype",
    "stop",
    "wait",
    "where",
    "write",
}

# Procedure prefix specifiers allowed before FUNCTION/SUBROUTINE.
procedure_prefixes = {
    "elemental",
    "impure",
    "module",
    "non_recursive",
    "pure",
    "recursive",
    "simple",
}

# Statements with externally visible effects; not allowed in a function
# that is meant to be pure. Internal (character variable) READ/WRITE is
# filtered out by the rule.
side_effect_keywords = {
    "backspace",
    "close",
    "endfile",
    "error",
    "flush",
    "inquire",
    "open",
    "print",
    "read",
    "rewind",
    "stop",
    "wait",
    "write",
}

# Construct keywords which take an END <keyword> closer, beyond program
# units, procedures, interfaces and derived types.
block_constructs = {
    "associate",
    "block",
    "critical",
    "do",
    "enum",
    "forall",
    "if",
    "select",
    "where",
}

# Closers written as a single word, mapped to the construct they close.
fused_end_keywords = {
    "endassociate": "associate",
    "endblock": "block",
    "endcritical": "critical",
    "enddo": "do",
    "endenum": "enum",
    "endforall": "forall",
    "endfunction": "function",
    "endif": "if",
    "endinterface": "interface",
    "endmodule": "module",
    "endprogram": "program",
    "endselect": "select",
    "endsubmodule": "submodule",
    "endsubroutine": "subroutine",
    "endtype": "type",
    "endwhere": "where",
}

# Statements starting with these words hold bounds or selectors, not array
# sections.
slice_exempt_statements = {
    "allocate",
    "case",
    "deallocate",
    "dimension",
    "forall",
    "rank",
} | intrinsic_types
