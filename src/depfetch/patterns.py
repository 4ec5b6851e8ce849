"""Glob-style file name patterns used to pick release assets."""

from __future__ import annotations

import functools
import re

# Characters that have a meaning in a regex but not in a glob.
_REGEX_SPECIALS = frozenset(".+^$()[]{}|\\")


@functools.lru_cache(maxsize=128)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a glob into an anchored, case-insensitive regex.

    ``**`` crosses ``/`` separators, ``*`` and ``?`` do not.
    """
    out = []
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c in _REGEX_SPECIALS:
            out.append("\\" + c)
        else:
            out.append(c)
        i += 1
    return re.compile("^" + "".join(out) + "$", re.IGNORECASE)


def matches(pattern: str, name: str) -> bool:
    return glob_to_regex(pattern).match(name) is not None


def first_match(pattern: str, names: list[str]) -> str | None:
    for name in names:
        if matches(pattern, name):
            return name
    return None
