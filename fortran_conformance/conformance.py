# *****************************COPYRIGHT*******************************
# (C) Crown copyright Met Office. All rights reserved.
# For further details please refer to the file LICENSE
# which you should have received as part of this distribution.
# *****************************COPYRIGHT*******************************

"""
Framework to find the Fortran files to check, run every enabled rule over
each of them in parallel, and report the collected diagnostics.
"""

import argparse
import concurrent.futures
import json
import logging
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from prettytable import PrettyTable

from . import VERSION
from .checker_dispatch_tables import CheckerDispatchTables
from .config import RuleConfig
from .diagnostics import ERROR, WARNING, Diagnostic, DiagnosticAggregator
from .errors import ConfigurationError, ConformanceError, SourceReadError
from .scanner import ScanResult, scan
from .tokenizer import TokenizedSource, tokenize_lines

logger = logging.getLogger(__name__)

FILE_EXTENSIONS = {".f90", ".f95", ".f03", ".f08", ".F90"}

EXIT_OK = 0
EXIT_BLOCKING = 1
EXIT_FATAL = 2


@dataclass
class SourceFile:
    """One file's lines, tokens and recovered structure."""

    path: str
    lines: List[str]
    tokenized: TokenizedSource
    scan: ScanResult

    @classmethod
    def from_lines(cls, path, lines: List[str]) -> "SourceFile":
        tokenized = tokenize_lines(lines)
        return cls(str(path), tokenized.lines, tokenized, scan(tokenized))

    @classmethod
    def read(cls, path) -> "SourceFile":
        """Read a file once and run the tokenizer and scanner over it."""
        try:
            text = Path(path).read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as err:
            raise SourceReadError(path, err)
        return cls.from_lines(path, text.splitlines())


def run_rules(source: SourceFile, config: RuleConfig,
              dispatch_tables: Optional[CheckerDispatchTables] = None) \
        -> List[Diagnostic]:
    """Run every enabled rule over one file, applying severity overrides
    and marking structure based findings from a broken scan as partial."""
    tables = dispatch_tables or CheckerDispatchTables()
    found = []
    for rule_id, rule in tables.rules_in_dispatch_order():
        if not config.is_enabled(rule_id):
            continue
        severity = config.severity_for(rule_id, rule.default_severity)
        for diagnostic in rule.check(source, config):
            diagnostic = diagnostic.with_severity(severity)
            if rule.needs_structure and source.scan.partial:
                diagnostic = diagnostic.as_partial()
            found.append(diagnostic)
    return sorted(found, key=lambda d: d.sort_key)


def check_source(path, lines: List[str],
                 config: Optional[RuleConfig] = None) -> List[Diagnostic]:
    """Check in-memory source. Same input, same output."""
    return run_rules(SourceFile.from_lines(path, lines),
                     config or RuleConfig())


class ConformanceChecker:
    """Main framework for running the rules over many files in parallel."""

    def __init__(
        self,
        config: Optional[RuleConfig] = None,
        max_workers: int = 8,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.config = config or RuleConfig()
        self.max_workers = max_workers
        self.cancel_event = cancel_event
        self.dispatch_tables = CheckerDispatchTables()
        self.aggregator = DiagnosticAggregator()
        self._lock = threading.Lock()
        self.files_checked: List[str] = []
        self.files_unreadable: List[str] = []
        self.files_skipped: List[str] = []
        self.files_failed: List[str] = []

    def check(self, file_path) -> List[Diagnostic]:
        """Run the pipeline on one file."""
        if self.cancel_event is not None and self.cancel_event.is_set():
            logger.info(f"[INFO] Cancelled, skipping {file_path}")
            with self._lock:
                self.files_skipped.append(str(file_path))
            return []
        try:
            source = SourceFile.read(file_path)
            logger.debug(f"[INFO] Checking {file_path}")
            diagnostics = run_rules(source, self.config, self.dispatch_tables)
        except SourceReadError as err:
            logger.error(f"[FAIL] {err.msg}")
            with self._lock:
                self.files_unreadable.append(str(file_path))
            return self._error_diagnostics("IO-ERROR", file_path, err)
        except Exception as err:
            # Anything else is fatal for this file only.
            logger.error(f"[FAIL] Checking {file_path} failed: {err!r}")
            with self._lock:
                self.files_failed.append(str(file_path))
            return self._error_diagnostics(
                "INTERNAL-ERROR", file_path,
                ConformanceError(f"Checking stopped unexpectedly: {err!r}"),
            )

        with self._lock:
            self.files_checked.append(str(file_path))
        return diagnostics

    def _error_diagnostics(self, rule_id: str, file_path,
                           error: ConformanceError) -> List[Diagnostic]:
        if not self.config.is_enabled(rule_id):
            return []
        rule = self.dispatch_tables.get_rule(rule_id)
        diagnostic = rule.from_error(file_path, error)
        return [diagnostic.with_severity(self.config.severity_for(
            rule_id, rule.default_severity))]

    def check_files(self, file_paths) -> DiagnosticAggregator:
        """Run all rules on the given files in parallel."""
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_workers
        ) as executor:
            future_to_path = {
                executor.submit(self.check, file_path): file_path
                for file_path in file_paths
            }
            for future in concurrent.futures.as_completed(future_to_path):
                self.aggregator.extend(future.result())
        if self.files_skipped:
            logger.warning(
                f"Run cancelled; {len(self.files_skipped)} file(s) were not "
                "checked"
            )
        return self.aggregator

    def exit_code(self) -> int:
        if not self.files_checked:
            return EXIT_FATAL
        if self.aggregator.has_blocking_errors:
            return EXIT_BLOCKING
        return EXIT_OK

    def print_results(self, output_format: str = "text",
                      print_volume: int = 3) -> None:
        diagnostics = self.aggregator.diagnostics()
        if output_format == "json":
            print(json.dumps(self.aggregator.records(), indent=2))
            return

        if print_volume >= 4:
            print(line_1(81))
            print("## Results :" + " " * 67 + "##")
            print(line_1(81))
        for diagnostic in diagnostics:
            if print_volume < 2 and diagnostic.severity != ERROR:
                continue
            print(diagnostic.format())
        if print_volume >= 3:
            counts = self.aggregator.count_by_severity()
            print(f"Total files checked: {len(self.files_checked)}")
            print(f"Errors: {counts[ERROR]}  Warnings: {counts[WARNING]}")
        if print_volume >= 4 and diagnostics:
            print(line_2(81))
            print(summary_table(self.aggregator))


def summary_table(aggregator: DiagnosticAggregator) -> PrettyTable:
    """Count of findings per rule."""
    table = PrettyTable()
    table.field_names = ["Rule", "Error", "Warning"]
    table.align["Rule"] = "l"
    counts = {}
    for diagnostic in aggregator.diagnostics():
        row = counts.setdefault(diagnostic.rule, {ERROR: 0, WARNING: 0})
        row[diagnostic.severity] += 1
    for rule_id, row in sorted(counts.items()):
        table.add_row([rule_id, row[ERROR], row[WARNING]])
    return table


def rules_table(dispatch_tables: CheckerDispatchTables,
                config: RuleConfig) -> PrettyTable:
    table = PrettyTable()
    table.field_names = ["Rule", "Severity", "Input", "Enabled",
                         "Description"]
    table.align["Rule"] = "l"
    table.align["Description"] = "l"
    for rule_id, rule in sorted(dispatch_tables.all_rules().items()):
        table.add_row([
            rule_id,
            config.severity_for(rule_id, rule.default_severity),
            rule.representation,
            "yes" if config.is_enabled(rule_id) else "no",
            rule.title,
        ])
    return table


def process_arguments(argv=None):
    """Process command line arguments."""
    parser = argparse.ArgumentParser(
        prog="fortran-conformance",
        description="""Fortran style conformance checker""",
    )
    parser.add_argument(
        "paths", nargs="*", default=["."],
        help="Files or directories to check. Directories are searched "
             "recursively for free-form Fortran source."
    )
    parser.add_argument(
        "-c", "--config", type=str, default=None,
        help="YAML rule configuration file"
    )
    parser.add_argument(
        "--disable", type=str, action="append", default=[],
        metavar="RULE", help="Disable a rule by id; may be repeated"
    )
    parser.add_argument(
        "--max-workers", type=int, default=8,
        help="Maximum number of parallel workers"
    )
    parser.add_argument(
        "--format", dest="output_format", choices=["text", "json"],
        default="text", help="Output format for the diagnostics"
    )
    parser.add_argument(
        "--list-rules", action="store_true",
        help="List the rules with their severities and exit"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {VERSION}"
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Increase output verbosity"
    )
    group.add_argument(
        "-q", "--quiet", action="count", default=0,
        help="Decrease output verbosity"
    )
    args = parser.parse_args(argv)
    # Determine output verbosity level
    args.volume = 3 + args.verbose - args.quiet
    return args


def line_1(length: int = 80) -> str:
    """Helper function to print a line for separating output sections."""
    repeats = length // 3
    pads = length % 3
    line = ""
    if pads > 1:
        line += "="
    line += "-=-" * repeats
    if pads > 0:
        line += "="
    return line


def line_2(length: int = 80) -> str:
    """Helper function to print a line for separating output sections."""
    return "-" * length


def get_files_to_check(paths: List[str]) -> Tuple[List[Path], List[Path]]:
    """
    Expand the paths given on the command line. Directories are searched
    recursively for free-form Fortran suffixes; files named explicitly are
    always checked.

    :return: The files to check, in a stable order, and any paths which
        don't exist.
    """
    files = []
    missing = []
    for path in map(Path, paths):
        if path.is_dir():
            found = sorted(f for f in path.rglob("*")
                           if f.is_file() and f.suffix in FILE_EXTENSIONS)
            logger.info(f"[INFO] Found {len(found)} files to check in {path}")
            files.extend(found)
        elif path.exists():
            files.append(path)
        else:
            missing.append(path)
    return files, missing


def configure_logging(print_volume: int) -> None:
    if print_volume >= 5:
        level = logging.DEBUG
    elif print_volume >= 4:
        level = logging.INFO
    elif print_volume >= 2:
        level = logging.WARNING
    else:
        level = logging.ERROR
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def load_config(args, dispatch_tables: CheckerDispatchTables) -> RuleConfig:
    known_rules = dispatch_tables.default_severities()
    if args.config:
        config = RuleConfig.load(args.config, known_rules)
    else:
        config = RuleConfig()
    return config.disable(args.disable, known_rules)


def main(argv=None) -> int:
    args = process_arguments(argv)
    log_volume = args.volume
    configure_logging(log_volume)

    dispatch_tables = CheckerDispatchTables()
    try:
        config = load_config(args, dispatch_tables)
    except ConfigurationError as err:
        logger.error(f"[FAIL] {err.msg}")
        rule = dispatch_tables.get_rule("CONFIG-ERROR")
        diagnostic = rule.from_error(args.config or "<command line>", err)
        if args.output_format == "json":
            print(json.dumps([diagnostic.record()], indent=2))
        else:
            print(diagnostic.format())
        return EXIT_FATAL

    if args.list_rules:
        print(rules_table(dispatch_tables, config))
        return EXIT_OK

    files, missing = get_files_to_check(args.paths)
    checker = ConformanceChecker(config, max_workers=args.max_workers)
    checker.check_files(files + missing)
    if not files and not missing:
        logger.error("[FAIL] No Fortran source files found to check")
    checker.print_results(args.output_format, log_volume)
    return checker.exit_code()


# Usage when run from command line.
if __name__ == "__main__":
    sys.exit(main())
