"""
Tag match patterns.

Grammar (host tag-matching convention):
    *        one tag part (no dots)
    **       zero or more tag parts; ``a.**`` also matches ``a``
    {x,y}    any of the alternatives
    \\c      literal character
Several patterns separated by whitespace match if any of them does.
"""

from __future__ import annotations

import re

from .errors import ConfigError


def _find_closing_brace(pat: str, start: int) -> int:
    depth = 0
    i = start
    while i < len(pat):
        c = pat[i]
        if c == "\\":
            i += 2
            continue
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise ConfigError(f"Unbalanced '{{' in match pattern: {pat!r}")


def _split_alternatives(body: str) -> list[str]:
    alts: list[str] = []
    depth = 0
    cur = []
    i = 0
    while i < len(body):
        c = body[i]
        if c == "\\" and i + 1 < len(body):
            cur.append(body[i : i + 2])
            i += 2
            continue
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
        elif c == "," and depth == 0:
            alts.append("".join(cur))
            cur = []
            i += 1
            continue
        cur.append(c)
        i += 1
    alts.append("".join(cur))
    return alts


def _compile(pat: str) -> str:
    out: list[str] = []
    i = 0
    n = len(pat)
    while i < n:
        c = pat[i]
        if c == "\\":
            if i + 1 >= n:
                raise ConfigError(f"Dangling escape in match pattern: {pat!r}")
            out.append(re.escape(pat[i + 1]))
            i += 2
        elif pat.startswith("**", i):
            if out and out[-1] == r"\.":
                out.pop()
                out.append(r"(?:\..*)?")
                i += 2
            elif i + 2 < n and pat[i + 2] == ".":
                out.append(r"(?:.*\.)?")
                i += 3
            else:
                out.append(".*")
                i += 2
        elif c == "*":
            out.append(r"[^.]*")
            i += 1
        elif c == "{":
            end = _find_closing_brace(pat, i)
            alts = _split_alternatives(pat[i + 1 : end])
            out.append("(?:" + "|".join(_compile(a) for a in alts) + ")")
            i = end + 1
        elif c == "}":
            raise ConfigError(f"Unbalanced '}}' in match pattern: {pat!r}")
        else:
            out.append(re.escape(c))
            i += 1
    return "".join(out)


class MatchPattern:
    """Compiled tag pattern. An empty pattern matches nothing."""

    def __init__(self, text: str):
        self.text = text.strip()
        self._regexes = [re.compile(_compile(p)) for p in self.text.split()]

    @classmethod
    def create(cls, text: str | None) -> "MatchPattern":
        return cls(text or "")

    @property
    def empty(self) -> bool:
        return not self._regexes

    def match(self, tag: str) -> bool:
        return any(r.fullmatch(tag) for r in self._regexes)

    def __repr__(self) -> str:
        return f"MatchPattern({self.text!r})"
