# FILE: scribe/actions/search_replace.py
"""Search/replace patch engine.

A rule set is one or more blocks:

    <<<<<<< SEARCH
    lines to find
    =======
    lines to put there instead
    >>>>>>> REPLACE

Rules apply in order, each against the content produced by the previous one.
The whole call fails (and nothing is returned) if any rule cannot be applied:

- NOT_FOUND: the search text occurs nowhere, even ignoring trailing whitespace
- AMBIGUOUS: the search text occurs more than once
- MALFORMED: no blocks, an unterminated block, or an empty search section

Matching is exact first. When the exact text is absent, a second pass compares
line by line with trailing whitespace stripped, so a model that dropped or
added trailing spaces still lands on the one intended location.

A rule that leaves the content unchanged, or whose search text only survives
inside its own replacement, has already been applied and fails as NOT_FOUND.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from .schemas import PatchFailure, PatchResult, PatchRule

SEARCH_MARKER = re.compile(r"^\s*<{5,9}\s*SEARCH\s*$")
DIVIDER_MARKER = re.compile(r"^\s*={5,9}\s*$")
REPLACE_MARKER = re.compile(r"^\s*>{5,9}\s*REPLACE\s*$")


class RuleSyntaxError(ValueError):
    pass


def parse_rules(rules: str) -> List[PatchRule]:
    """Parse rule blocks. Raises RuleSyntaxError on malformed input."""
    lines = rules.replace("\r\n", "\n").split("\n")
    parsed: List[PatchRule] = []
    i = 0
    while i < len(lines):
        if not SEARCH_MARKER.match(lines[i]):
            if DIVIDER_MARKER.match(lines[i]) or REPLACE_MARKER.match(lines[i]):
                raise RuleSyntaxError(f"line {i + 1}: marker outside of a SEARCH block")
            i += 1
            continue

        start = i
        i += 1
        search_lines: List[str] = []
        while i < len(lines) and not DIVIDER_MARKER.match(lines[i]):
            if SEARCH_MARKER.match(lines[i]) or REPLACE_MARKER.match(lines[i]):
                raise RuleSyntaxError(f"line {i + 1}: expected ======= before this marker")
            search_lines.append(lines[i])
            i += 1
        if i >= len(lines):
            raise RuleSyntaxError(f"line {start + 1}: SEARCH block has no ======= divider")

        i += 1
        replace_lines: List[str] = []
        while i < len(lines) and not REPLACE_MARKER.match(lines[i]):
            if SEARCH_MARKER.match(lines[i]) or DIVIDER_MARKER.match(lines[i]):
                raise RuleSyntaxError(f"line {i + 1}: expected >>>>>>> REPLACE before this marker")
            replace_lines.append(lines[i])
            i += 1
        if i >= len(lines):
            raise RuleSyntaxError(f"line {start + 1}: SEARCH block is not closed by >>>>>>> REPLACE")
        i += 1

        search = "\n".join(search_lines)
        if not search.strip():
            raise RuleSyntaxError(f"line {start + 1}: SEARCH section is empty")
        parsed.append(PatchRule(search=search, replace="\n".join(replace_lines)))

    if not parsed:
        raise RuleSyntaxError("no SEARCH/REPLACE blocks found")
    return parsed


def _find_lenient(content: str, search: str) -> List[Tuple[int, int]]:
    """Character spans of line windows equal to `search` modulo trailing whitespace."""
    content_lines = content.split("\n")
    search_lines = [line.rstrip() for line in search.split("\n")]
    # Trailing blank lines in the search text are not significant here
    while len(search_lines) > 1 and search_lines[-1] == "":
        search_lines.pop()

    offsets = []
    pos = 0
    for line in content_lines:
        offsets.append(pos)
        pos += len(line) + 1

    spans: List[Tuple[int, int]] = []
    n = len(search_lines)
    for start in range(len(content_lines) - n + 1):
        if all(content_lines[start + k].rstrip() == search_lines[k] for k in range(n)):
            end_line = start + n - 1
            spans.append((offsets[start], offsets[end_line] + len(content_lines[end_line])))
    return spans


def _strip_trailing(text: str) -> str:
    lines = [line.rstrip() for line in text.split("\n")]
    while len(lines) > 1 and lines[-1] == "":
        lines.pop()
    return "\n".join(lines)


def _already_applied(content: str, rule: PatchRule) -> bool:
    """True when every occurrence of the search text sits inside the replacement text."""
    if rule.search == rule.replace or rule.search not in rule.replace:
        return False
    offset = rule.replace.index(rule.search)
    start = content.find(rule.search)
    while start != -1:
        origin = start - offset
        if origin < 0 or content[origin:origin + len(rule.replace)] != rule.replace:
            return False
        start = content.find(rule.search, start + 1)
    return True


def _applied_failure(index: int) -> PatchResult:
    return PatchResult.fail(
        PatchFailure.NOT_FOUND,
        f"rule {index}: search text only occurs inside its own replacement (already applied)",
    )


def _unchanged_failure(index: int) -> PatchResult:
    return PatchResult.fail(
        PatchFailure.NOT_FOUND,
        f"rule {index}: replacement leaves the content unchanged (already applied)",
    )


def _apply_rule(content: str, rule: PatchRule, index: int) -> PatchResult:
    if rule.search in content and _already_applied(content, rule):
        return _applied_failure(index)

    count = content.count(rule.search)
    if count == 1:
        patched = content.replace(rule.search, rule.replace, 1)
        if patched == content:
            return _unchanged_failure(index)
        return PatchResult.ok(patched)
    if count > 1:
        return PatchResult.fail(
            PatchFailure.AMBIGUOUS,
            f"rule {index}: search text matches {count} locations; add surrounding lines to make it unique",
        )

    spans = _find_lenient(content, rule.search)
    if spans:
        stripped = PatchRule(search=_strip_trailing(rule.search), replace=_strip_trailing(rule.replace))
        if _already_applied(_strip_trailing(content), stripped):
            return _applied_failure(index)
    if len(spans) == 1:
        start, end = spans[0]
        patched = content[:start] + rule.replace + content[end:]
        if patched == content:
            return _unchanged_failure(index)
        return PatchResult.ok(patched)
    if len(spans) > 1:
        return PatchResult.fail(
            PatchFailure.AMBIGUOUS,
            f"rule {index}: search text matches {len(spans)} locations (ignoring trailing whitespace)",
        )
    first_line = rule.search.strip().split("\n", 1)[0]
    return PatchResult.fail(
        PatchFailure.NOT_FOUND,
        f"rule {index}: search text not found (starting with {first_line!r})",
    )


def apply_search_replace(original: str, rules: str) -> PatchResult:
    """
    Apply every rule in `rules` to `original`.

    Returns PatchResult.ok(new_content) only if each rule matched exactly one
    location in the content as patched so far.
    """
    try:
        parsed = parse_rules(rules)
    except RuleSyntaxError as e:
        return PatchResult.fail(PatchFailure.MALFORMED, str(e))

    content = original
    for index, rule in enumerate(parsed, start=1):
        result = _apply_rule(content, rule, index)
        if not result.success:
            return result
        content = result.content
    return PatchResult.ok(content)


def describe_failure(result: PatchResult) -> Optional[str]:
    if result.success:
        return None
    reason = result.reason.value if result.reason else "unknown"
    return f"{reason}: {result.error}"
