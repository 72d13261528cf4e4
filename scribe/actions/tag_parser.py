# FILE: scribe/actions/tag_parser.py
"""Tag parsing for model responses.

The model embeds its intended changes in the response as tags:

    <write path="src/App.tsx" description="...">...file body...</write>
    <rename from="src/a.ts" to="src/b.ts"></rename>
    <delete path="src/old.ts"></delete>
    <add-dependency packages="react-router zod"></add-dependency>
    <execute-sql description="...">...statement...</execute-sql>
    <search-replace path="src/App.tsx" description="...">...rules...</search-replace>
    <chat-summary>...</chat-summary>
    <command type="rebuild"></command>

Every function here is pure: each call scans the text with fresh iterators and
returns a new list. Malformed tags never raise; tags missing a required
attribute are dropped and reported as warnings.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from .path_utils import UnsafePathError, normalize_path
from .schemas import (
    Action,
    AddDependencyAction,
    ChatSummaryAction,
    CommandAction,
    DeleteAction,
    ExecuteSqlAction,
    Extraction,
    RenameAction,
    SearchReplaceAction,
    WriteAction,
)

logger = logging.getLogger(__name__)

TAG_NAMES = (
    "write",
    "rename",
    "delete",
    "add-dependency",
    "chat-summary",
    "execute-sql",
    "command",
    "search-replace",
)


def _tag_regex(name: str) -> "re.Pattern[str]":
    # The attribute group must start with whitespace so <write> never matches <write-x>
    return re.compile(
        rf"<{re.escape(name)}(\s[^>]*)?>([\s\S]*?)</{re.escape(name)}>",
        re.IGNORECASE,
    )


_TAG_PATTERNS: Dict[str, "re.Pattern[str]"] = {name: _tag_regex(name) for name in TAG_NAMES}

_ATTRIBUTE_RE = re.compile(r'([A-Za-z_][\w-]*)\s*=\s*"([^"]*)"')

_OPENING_TAG_RE = re.compile(
    r"<(" + "|".join(re.escape(n) for n in TAG_NAMES) + r')((?:\s+[A-Za-z_][\w-]*\s*=\s*"[^"]*")*)(\s*/?>)',
    re.IGNORECASE,
)

FENCE = "```"


# =============================================================================
# Helpers
# =============================================================================

def clean_full_response(text: str) -> str:
    """
    Escape angle brackets inside tag attribute values.

    Descriptions often mention markup ("use <a> tags") which would otherwise
    end the opening tag early. Brackets become full-width ＜ ＞; everything
    outside tag attributes is left untouched.
    """
    def _escape_value(m: "re.Match[str]") -> str:
        value = m.group(2).replace("<", "＜").replace(">", "＞")
        return f'{m.group(1)}="{value}"'

    def _escape_tag(m: "re.Match[str]") -> str:
        attributes = _ATTRIBUTE_RE.sub(_escape_value, m.group(2))
        return f"<{m.group(1)}{attributes}{m.group(3)}"

    return _OPENING_TAG_RE.sub(_escape_tag, text)


def parse_attributes(attribute_string: Optional[str]) -> Dict[str, str]:
    """Parse name="value" pairs; first occurrence of a name wins."""
    attributes: Dict[str, str] = {}
    for name, value in _ATTRIBUTE_RE.findall(attribute_string or ""):
        attributes.setdefault(name.lower(), value)
    return attributes


def strip_code_fence(body: str) -> str:
    """
    Trim a tag body and drop a surrounding Markdown code fence.

    The first line is dropped when it opens a fence (``` or ```tsx), the last
    line when it closes one. Lines in between, blank ones included, are kept.
    """
    content = body.strip()
    lines = content.split("\n")
    if lines and lines[0].lstrip().startswith(FENCE):
        lines = lines[1:]
    if lines and lines[-1].strip().startswith(FENCE):
        lines = lines[:-1]
    return "\n".join(lines)


def _snippet(text: str, limit: int = 120) -> str:
    text = text.replace("\n", " ")
    return text if len(text) <= limit else text[:limit] + "..."


def _required_path(
    tag: str,
    attribute: str,
    attributes: Dict[str, str],
    raw: str,
    warnings: List[str],
) -> Optional[str]:
    """Normalized value of a required path attribute, or None (with a warning)."""
    value = attributes.get(attribute, "").strip()
    if not value:
        warning = f"Found <{tag}> tag without a valid '{attribute}' attribute: {_snippet(raw)}"
        logger.warning("[tag_parser] %s", warning)
        warnings.append(warning)
        return None
    try:
        return normalize_path(value)
    except UnsafePathError as e:
        warning = f"Dropped <{tag}> tag with unsafe '{attribute}' attribute {value!r}: {e}"
        logger.warning("[tag_parser] %s", warning)
        warnings.append(warning)
        return None


def _iter_tags(name: str, text: str):
    for match in _TAG_PATTERNS[name].finditer(text):
        yield match.group(0), parse_attributes(match.group(1)), match.group(2)


# =============================================================================
# Per-kind extraction
# =============================================================================

def get_write_tags(text: str, warnings: Optional[List[str]] = None) -> List[WriteAction]:
    warnings = warnings if warnings is not None else []
    tags: List[WriteAction] = []
    for raw, attributes, body in _iter_tags("write", text):
        path = _required_path("write", "path", attributes, raw, warnings)
        if path is None:
            continue
        tags.append(WriteAction(
            path=path,
            content=strip_code_fence(body),
            description=attributes.get("description") or None,
        ))
    return tags


def get_rename_tags(text: str, warnings: Optional[List[str]] = None) -> List[RenameAction]:
    warnings = warnings if warnings is not None else []
    tags: List[RenameAction] = []
    for raw, attributes, _body in _iter_tags("rename", text):
        from_path = _required_path("rename", "from", attributes, raw, warnings)
        if from_path is None:
            continue
        to_path = _required_path("rename", "to", attributes, raw, warnings)
        if to_path is None:
            continue
        tags.append(RenameAction(from_path=from_path, to_path=to_path))
    return tags


def get_delete_tags(text: str, warnings: Optional[List[str]] = None) -> List[str]:
    warnings = warnings if warnings is not None else []
    paths: List[str] = []
    for raw, attributes, _body in _iter_tags("delete", text):
        path = _required_path("delete", "path", attributes, raw, warnings)
        if path is not None:
            paths.append(path)
    return paths


def get_add_dependency_packages(text: str, warnings: Optional[List[str]] = None) -> List[str]:
    """Package names from every add-dependency tag, concatenated in order (duplicates kept)."""
    warnings = warnings if warnings is not None else []
    packages: List[str] = []
    for raw, attributes, _body in _iter_tags("add-dependency", text):
        names = attributes.get("packages", "").split()
        if not names:
            warning = f"Found <add-dependency> tag without a valid 'packages' attribute: {_snippet(raw)}"
            logger.warning("[tag_parser] %s", warning)
            warnings.append(warning)
            continue
        packages.extend(names)
    return packages


def get_chat_summary(text: str) -> Optional[str]:
    """Text of the first chat-summary tag, trimmed; None when absent or empty."""
    for _raw, _attributes, body in _iter_tags("chat-summary", text):
        summary = body.strip()
        return summary or None
    return None


def get_execute_sql_tags(text: str) -> List[ExecuteSqlAction]:
    return [
        ExecuteSqlAction(
            statement=strip_code_fence(body),
            description=attributes.get("description") or None,
        )
        for _raw, attributes, body in _iter_tags("execute-sql", text)
    ]


def get_command_tags(text: str, warnings: Optional[List[str]] = None) -> List[str]:
    warnings = warnings if warnings is not None else []
    commands: List[str] = []
    for raw, attributes, _body in _iter_tags("command", text):
        command_type = attributes.get("type", "").strip()
        if not command_type:
            warning = f"Found <command> tag without a valid 'type' attribute: {_snippet(raw)}"
            logger.warning("[tag_parser] %s", warning)
            warnings.append(warning)
            continue
        commands.append(command_type)
    return commands


def get_search_replace_tags(text: str, warnings: Optional[List[str]] = None) -> List[SearchReplaceAction]:
    warnings = warnings if warnings is not None else []
    tags: List[SearchReplaceAction] = []
    for raw, attributes, body in _iter_tags("search-replace", text):
        path = _required_path("search-replace", "path", attributes, raw, warnings)
        if path is None:
            continue
        tags.append(SearchReplaceAction(
            path=path,
            rules=strip_code_fence(body),
            description=attributes.get("description") or None,
        ))
    return tags


# =============================================================================
# Whole-response extraction
# =============================================================================

def extract_with_warnings(text: str) -> Extraction:
    """
    Parse every action in a response.

    Actions are grouped by kind (write, rename, delete, add-dependency,
    execute-sql, search-replace, chat-summary, command), each group in the
    order its tags appear. Execution order is decided by the orchestrator.
    """
    if not text:
        return Extraction()

    text = clean_full_response(text)
    warnings: List[str] = []
    actions: List[Action] = []

    actions.extend(get_write_tags(text, warnings))
    actions.extend(get_rename_tags(text, warnings))
    actions.extend(DeleteAction(path=p) for p in get_delete_tags(text, warnings))

    packages = get_add_dependency_packages(text, warnings)
    if packages:
        actions.append(AddDependencyAction(packages=tuple(packages)))

    actions.extend(get_execute_sql_tags(text))
    actions.extend(get_search_replace_tags(text, warnings))

    summary = get_chat_summary(text)
    if summary is not None:
        actions.append(ChatSummaryAction(text=summary))

    actions.extend(CommandAction(command_type=c) for c in get_command_tags(text, warnings))

    return Extraction(actions=actions, warnings=warnings)


def extract(text: str) -> List[Action]:
    """Parse every action in a response (see extract_with_warnings)."""
    return extract_with_warnings(text).actions


def split_actions(actions: List[Action]) -> Tuple[
    List[WriteAction],
    List[RenameAction],
    List[DeleteAction],
    List[str],
    List[ExecuteSqlAction],
    List[SearchReplaceAction],
]:
    """Group an action list by the kinds the orchestrator executes."""
    writes = [a for a in actions if isinstance(a, WriteAction)]
    renames = [a for a in actions if isinstance(a, RenameAction)]
    deletes = [a for a in actions if isinstance(a, DeleteAction)]
    packages: List[str] = []
    for a in actions:
        if isinstance(a, AddDependencyAction):
            packages.extend(a.packages)
    sql = [a for a in actions if isinstance(a, ExecuteSqlAction)]
    search_replace = [a for a in actions if isinstance(a, SearchReplaceAction)]
    return writes, renames, deletes, packages, sql, search_replace
