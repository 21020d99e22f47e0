"""Textual danger scan for inline interpreter scripts.

Script bodies are never executed or parsed as an AST.  Each interpreter has
an ordered list of dangerous-call patterns in the ``PatternSet``; the first
one found anywhere in the body decides.
"""

from __future__ import annotations

from typing import NamedTuple

from permission_hook.core.patterns import PatternSet, first_match
from permission_hook.hooks.models import InlineScript


class ScanResult(NamedTuple):
    """Result of scanning one inline script."""

    dangerous: bool
    pattern: str | None  # source of the first matching pattern


SAFE = ScanResult(dangerous=False, pattern=None)


def scan_script(script: InlineScript, patterns: PatternSet) -> ScanResult:
    """Scan *script* against its interpreter's dangerous-pattern list.

    Args:
        script: Extracted script body and interpreter tag.
        patterns: Compiled policy.

    Returns:
        ``ScanResult(True, <pattern source>)`` on the first hit, else ``SAFE``.
        Interpreters without a pattern list scan as safe.
    """
    hit = first_match(patterns.script_patterns(script.interpreter), script.body)
    if hit is None:
        return SAFE
    return ScanResult(dangerous=True, pattern=hit.source)
