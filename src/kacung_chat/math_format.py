"""Render-time cleanup of LaTeX delimiters in model output."""

from __future__ import annotations

import re

# Delimiter rewrites: \( \) and \[ \] become $ and $$, and bracket-only spans
# that open with a control word become block math.
_DELIMITER_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\\\((.*?)\\\)"), r"$\1$"),
    (re.compile(r"\\\[([\s\S]*?)\\\]"), r"$$\1$$"),
    (re.compile(r"\[\s*(\\[a-zA-Z]+[^\[\]$]*?)\s*\]"), r"$$\1$$"),
)

# Known token-splitting typos.
_TYPO_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\\partia l"), r"\\partial"),
    (re.compile(r"\\delt a"), r"\\delta"),
    (re.compile(r"\\phi\s+"), r"\\phi "),
    (re.compile(r"\\frac\s+\{"), r"\\frac{"),
)


def normalize_delimiters(content: str) -> str:
    for pattern, replacement in _DELIMITER_RULES:
        content = pattern.sub(replacement, content)
    return content


def patch_typos(content: str) -> str:
    for pattern, replacement in _TYPO_RULES:
        content = pattern.sub(replacement, content)
    return content


def normalize_math(content: str) -> str:
    """Rewrite math delimiters to ``$``/``$$`` and patch common typos.

    Never persisted; only used when a message is rendered.
    """
    if not content:
        return content
    return patch_typos(normalize_delimiters(content))
