# *****************************COPYRIGHT*******************************
# (C) Crown copyright Met Office. All rights reserved.
# For further details please refer to the file LICENSE
# which you should have received as part of this distribution.
# *****************************COPYRIGHT*******************************
"""
Exceptions raised while reading, tokenizing, scanning and configuring.

Each carries a human readable ``msg`` so it can be turned into a
Diagnostic at the pipeline boundary rather than aborting a run.
"""


class ConformanceError(Exception):
    """
    Base class for every error the checker knows how to report.
    """

    def __init__(self, msg="Conformance checker error.", line=0, column=0):
        super().__init__(msg)
        self.msg = msg
        self.line = line
        self.column = column


class LexError(ConformanceError):
    """
    Raised when a physical line can't be tokenized, e.g. an unterminated
    character literal or a continuation with nothing to continue onto.
    Recoverable: tokenizing resumes on the next physical line.
    """

    pass


class StructuralError(ConformanceError):
    """
    Raised (or recorded) when unit or construct boundaries don't pair up.
    Recoverable per file; the scanner keeps whatever it recovered.
    """

    def __init__(self, msg, line=0, column=0, construct=""):
        super().__init__(msg, line, column)
        self.construct = construct


class ConfigurationError(ConformanceError):
    """
    Raised for an unknown rule id or a conflicting severity override.
    No checks are run for an invocation with a bad configuration.
    """

    def __init__(self, msg, rule_id=""):
        super().__init__(msg)
        self.rule_id = rule_id


class SourceReadError(ConformanceError):
    """
    Raised when a source file can't be read or decoded. Fatal for that
    file only.
    """

    def __init__(self, path, reason):
        super().__init__(f"Unable to read {path}: {reason}")
        self.path = str(path)
        self.reason = str(reason)
