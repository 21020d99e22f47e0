"""Compiled, immutable pattern sets for the permission classifier.

``HookConfig`` holds pattern *sources*; ``PatternSet`` holds them compiled.
A PatternSet is built once per process and passed explicitly to every
classifier call, so tests can hand in synthetic sets.

Invalid regular expressions are reported once (at build time) and dropped:
they never match and never raise during classification.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from permission_hook.config import HookConfig

logger = logging.getLogger(__name__)

_CASE_INSENSITIVE_INTERPRETERS = frozenset({"powershell", "cmd"})


@dataclass(frozen=True)
class CompiledPattern:
    """A regex together with the source text it was compiled from."""

    source: str
    regex: re.Pattern[str]

    def search(self, text: str) -> bool:
        return self.regex.search(text) is not None

    def find(self, text: str) -> re.Match[str] | None:
        return self.regex.search(text)


def compile_patterns(
    sources: Iterable[str],
    label: str,
    flags: int = 0,
) -> tuple[CompiledPattern, ...]:
    """Compile *sources*, skipping (and logging) invalid expressions.

    Args:
        sources: Regex source strings, in priority order.
        label: Human-readable name of the list for the warning message.
        flags: ``re`` flags applied to every pattern.

    Returns:
        Compiled patterns in input order, minus the invalid ones.
    """
    compiled: list[CompiledPattern] = []
    for source in sources:
        try:
            compiled.append(CompiledPattern(source=source, regex=re.compile(source, flags)))
        except re.error as e:
            logger.warning(f"Ignoring invalid {label} pattern {source!r}: {e}")
    return tuple(compiled)


def first_match(patterns: Iterable[CompiledPattern], text: str) -> CompiledPattern | None:
    for pattern in patterns:
        if pattern.search(text):
            return pattern
    return None


@dataclass(frozen=True)
class PatternSet:
    """Read-only policy used by the parser, classifier and analyzer."""

    approved_tools: frozenset[str] = frozenset()
    approved_commands: tuple[CompiledPattern, ...] = ()
    denied_commands: tuple[CompiledPattern, ...] = ()
    protected_paths: tuple[CompiledPattern, ...] = ()
    dangerous_scripts: dict[str, tuple[CompiledPattern, ...]] = field(
        default_factory=dict, hash=False
    )
    inline_scripts_enabled: bool = True

    def script_patterns(self, interpreter: str) -> tuple[CompiledPattern, ...]:
        return self.dangerous_scripts.get(interpreter, ())

    @classmethod
    def from_config(cls, config: HookConfig) -> PatternSet:
        """Compile every pattern list of a ``HookConfig``."""
        scripts = config.inline_scripts
        script_sources = {
            "python": scripts.dangerous_python_patterns,
            "node": scripts.dangerous_node_patterns,
            "powershell": scripts.dangerous_powershell_patterns,
            "cmd": scripts.dangerous_cmd_patterns,
        }
        dangerous = {
            name: compile_patterns(
                sources,
                f"dangerous {name}",
                re.IGNORECASE if name in _CASE_INSENSITIVE_INTERPRETERS else 0,
            )
            for name, sources in script_sources.items()
        }
        return cls(
            approved_tools=frozenset(config.auto_approve.tools),
            approved_commands=compile_patterns(config.auto_approve.bash_patterns, "approve"),
            denied_commands=compile_patterns(config.auto_deny.bash_patterns, "deny"),
            protected_paths=compile_patterns(config.auto_deny.protected_paths, "protected path"),
            dangerous_scripts=dangerous,
            inline_scripts_enabled=scripts.enabled,
        )

    @classmethod
    def default(cls) -> PatternSet:
        return cls.from_config(HookConfig())
