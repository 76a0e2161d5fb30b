# *****************************COPYRIGHT*******************************
# (C) Crown copyright Met Office. All rights reserved.
# For further details please refer to the file LICENSE
# which you should have received as part of this distribution.
# *****************************COPYRIGHT*******************************
"""
Rule configuration: which rules run, at what severity, and the handful of
project specific names some rules need.

A configuration file is YAML, e.g.

    rules:
      LINE-LENGTH: {severity: warning}
      NO-SAVE: false
    options:
      setup_module: model_setup
      use_only_exempt: [constants_mod]

The rules section may also be a list of ``{rule: ID, enabled: ...,
severity: ...}`` entries. Any problem with the configuration raises a
ConfigurationError and no checks are run.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import yaml

from .diagnostics import SEVERITIES
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = {
    "program_variable_module": "progvars",
    "setup_module": "setup",
    "setup_procedures": ["setup_init", "setup_cleanup"],
    "use_only_exempt": [],
    "max_line_length": 79,
}


@dataclass(frozen=True)
class RuleSetting:
    enabled: bool = True
    severity: Optional[str] = None


@dataclass
class RuleConfig:
    """Per rule settings plus rule options. Rules not named use their
    defaults."""

    rules: Dict[str, RuleSetting] = field(default_factory=dict)
    program_variable_module: str = DEFAULT_OPTIONS["program_variable_module"]
    setup_module: str = DEFAULT_OPTIONS["setup_module"]
    setup_procedures: List[str] = field(
        default_factory=lambda: list(DEFAULT_OPTIONS["setup_procedures"])
    )
    use_only_exempt: List[str] = field(default_factory=list)
    max_line_length: int = DEFAULT_OPTIONS["max_line_length"]

    def is_enabled(self, rule_id: str) -> bool:
        setting = self.rules.get(rule_id)
        return setting is None or setting.enabled

    def severity_for(self, rule_id: str, default: str) -> str:
        setting = self.rules.get(rule_id)
        if setting is None or setting.severity is None:
            return default
        return setting.severity

    def exempt_from_use_only(self, module_name: str) -> bool:
        exempt = {self.program_variable_module.lower()}
        exempt |= {name.lower() for name in self.use_only_exempt}
        return module_name.lower() in exempt

    def disable(self, rule_ids: Iterable[str],
                known_rules: Dict[str, str]) -> "RuleConfig":
        """Turn off rules by id, e.g. from the command line."""
        for rule_id in rule_ids:
            rule_id = rule_id.upper()
            if rule_id not in known_rules:
                raise ConfigurationError(
                    f"Unknown rule id '{rule_id}' given to disable", rule_id
                )
            current = self.rules.get(rule_id, RuleSetting())
            self.rules[rule_id] = RuleSetting(False, current.severity)
        return self

    @classmethod
    def from_mapping(cls, data: Optional[Dict],
                     known_rules: Dict[str, str]) -> "RuleConfig":
        """
        Build a configuration from already parsed data. ``known_rules``
        maps every rule id to its default severity.
        """
        if data is None:
            return cls()
        validate_config(data)
        config = cls(rules=_rule_settings(data.get("rules"), known_rules))
        for option, value in (data.get("options") or {}).items():
            setattr(config, option, value)
        return config

    @classmethod
    def load(cls, path: Union[str, Path],
             known_rules: Dict[str, str]) -> "RuleConfig":
        """Load a YAML configuration file."""
        try:
            with open(path, "r") as stream:
                data = yaml.safe_load(stream)
        except OSError as err:
            raise ConfigurationError(
                f"Unable to read configuration file {path}: {err}"
            )
        except yaml.YAMLError as err:
            raise ConfigurationError(
                f"Configuration file {path} is not valid YAML: {err}"
            )
        logger.info(f"[INFO] Read rule configuration from {path}")
        return cls.from_mapping(data, known_rules)


def validate_config(data) -> None:
    """
    Check the configuration dictionary matches format expectations: a
    "rules" mapping or list, and an "options" mapping of known options
    with values of the right type.
    """
    if not isinstance(data, dict):
        raise ConfigurationError(
            "The configuration should be a mapping with 'rules' and/or "
            "'options' keys"
        )
    unknown = set(data) - {"rules", "options"}
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration section(s): {', '.join(sorted(unknown))}"
        )

    options = data.get("options") or {}
    if not isinstance(options, dict):
        raise ConfigurationError("The 'options' section should be a mapping")
    for option, value in options.items():
        if option not in DEFAULT_OPTIONS:
            raise ConfigurationError(f"Unknown option '{option}'")
        expected = type(DEFAULT_OPTIONS[option])
        if expected is int:
            valid = isinstance(value, int) and not isinstance(value, bool) \
                and value > 0
        elif expected is list:
            valid = isinstance(value, list) and all(
                isinstance(item, str) for item in value
            )
        else:
            valid = isinstance(value, str) and bool(value)
        if not valid:
            raise ConfigurationError(
                f"Option '{option}' should be a {expected.__name__}, "
                f"got {value!r}"
            )


def _rule_settings(rules, known_rules: Dict[str, str]) \
        -> Dict[str, RuleSetting]:
    if rules is None:
        return {}
    if isinstance(rules, dict):
        entries = []
        for rule_id, value in rules.items():
            if isinstance(value, bool):
                value = {"enabled": value}
            if not isinstance(value, dict):
                raise ConfigurationError(
                    f"Settings for rule '{rule_id}' should be a mapping or "
                    "true/false",
                    str(rule_id),
                )
            entries.append(dict(value, rule=rule_id))
    elif isinstance(rules, list):
        entries = rules
    else:
        raise ConfigurationError(
            "The 'rules' section should be a mapping or a list of entries"
        )

    settings: Dict[str, RuleSetting] = {}
    for entry in entries:
        if not isinstance(entry, dict) or "rule" not in entry:
            raise ConfigurationError(
                f"Rule entry {entry!r} should be a mapping with a 'rule' key"
            )
        rule_id = str(entry["rule"]).upper()
        if rule_id not in known_rules:
            raise ConfigurationError(f"Unknown rule id '{rule_id}'", rule_id)
        unknown = set(entry) - {"rule", "enabled", "severity"}
        if unknown:
            raise ConfigurationError(
                f"Unknown setting(s) for rule '{rule_id}': "
                f"{', '.join(sorted(unknown))}",
                rule_id,
            )
        enabled = entry.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ConfigurationError(
                f"'enabled' for rule '{rule_id}' should be true or false",
                rule_id,
            )
        severity = entry.get("severity")
        if severity is not None:
            severity = str(severity).lower()
            if severity not in SEVERITIES:
                raise ConfigurationError(
                    f"Invalid severity '{entry['severity']}' for rule "
                    f"'{rule_id}', expected one of {', '.join(SEVERITIES)}",
                    rule_id,
                )
        setting = RuleSetting(enabled, severity)
        if rule_id in settings and settings[rule_id] != setting:
            raise ConfigurationError(
                f"Conflicting settings given for rule '{rule_id}'", rule_id
            )
        settings[rule_id] = setting
    return settings
