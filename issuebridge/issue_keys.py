"""Jira issue key extraction from commit messages, branch names and titles.

An issue key is ``<PROJECT>-<NUMBER>`` where the project part is at least two
letters or digits and starts with a letter of any script. Keys are matched
only when they are not glued to surrounding letters or digits, so punctuation,
whitespace, ``_``, ``/`` and ``-`` all count as separators.
"""
from __future__ import annotations

import re
from typing import Any, Iterable

# [^\W\d_] is "a letter", [^\W_] is "a letter or digit" in unicode mode.
_ISSUE_KEY_PATTERN = re.compile(r"(?<![^\W_])([^\W\d_][^\W_]+-[0-9]+)(?![^\W_])")
_NUMBER_SUFFIX_PATTERN = re.compile(r"-[0-9]+$")


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


def extract_issue_keys(text: Any) -> list[str]:
    """Return upper-cased issue keys from ``text`` in first-occurrence order.

    Never raises: anything that is not a non-empty string yields ``[]``.
    """
    if not isinstance(text, str) or not text:
        return []
    return _unique(match.upper() for match in _ISSUE_KEY_PATTERN.findall(text))


def extract_from_texts(*texts: Any) -> list[str]:
    """Extract keys from several fields, de-duplicated across all of them."""
    keys: list[str] = []
    for text in texts:
        keys.extend(extract_issue_keys(text))
    return _unique(keys)


def project_key_of(issue_key: str) -> str:
    """``"J42-123"`` -> ``"J42"``."""
    return _NUMBER_SUFFIX_PATTERN.sub("", issue_key or "").upper()


def extract_project_keys(issue_keys: Iterable[str]) -> list[str]:
    return _unique(key for key in (project_key_of(k) for k in issue_keys) if key)
