# FILE: scribe/actions/schemas.py
"""Data structures for the action pipeline.

- Actions: one parsed instruction from a model response (tagged union)
- PatchResult: outcome of the search/replace engine
- Diagnostic / DiagnosticReport: compile-check output
- Output / ExecutionResult: orchestrator accumulator and summary
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


# =============================================================================
# Enums
# =============================================================================

class ActionType(str, Enum):
    """Kinds of actions a response can contain."""
    WRITE = "write"
    RENAME = "rename"
    DELETE = "delete"
    ADD_DEPENDENCY = "add-dependency"
    EXECUTE_SQL = "execute-sql"
    SEARCH_REPLACE = "search-replace"
    CHAT_SUMMARY = "chat-summary"
    COMMAND = "command"


class PatchFailure(str, Enum):
    """Why a search/replace rule set could not be applied."""
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"
    MALFORMED = "malformed"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    MESSAGE = "message"


# =============================================================================
# Actions
# =============================================================================

@dataclass(frozen=True)
class WriteAction:
    path: str
    content: str
    description: Optional[str] = None
    type: ActionType = field(default=ActionType.WRITE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "path": self.path, "content": self.content, "description": self.description}


@dataclass(frozen=True)
class RenameAction:
    from_path: str
    to_path: str
    type: ActionType = field(default=ActionType.RENAME, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "from": self.from_path, "to": self.to_path}


@dataclass(frozen=True)
class DeleteAction:
    path: str
    type: ActionType = field(default=ActionType.DELETE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "path": self.path}


@dataclass(frozen=True)
class AddDependencyAction:
    packages: Tuple[str, ...]
    type: ActionType = field(default=ActionType.ADD_DEPENDENCY, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "packages": list(self.packages)}


@dataclass(frozen=True)
class ExecuteSqlAction:
    statement: str
    description: Optional[str] = None
    type: ActionType = field(default=ActionType.EXECUTE_SQL, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "statement": self.statement, "description": self.description}


@dataclass(frozen=True)
class SearchReplaceAction:
    path: str
    rules: str
    description: Optional[str] = None
    type: ActionType = field(default=ActionType.SEARCH_REPLACE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "path": self.path, "rules": self.rules, "description": self.description}


@dataclass(frozen=True)
class ChatSummaryAction:
    text: str
    type: ActionType = field(default=ActionType.CHAT_SUMMARY, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "text": self.text}


@dataclass(frozen=True)
class CommandAction:
    command_type: str
    type: ActionType = field(default=ActionType.COMMAND, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "command_type": self.command_type}


Action = Union[
    WriteAction,
    RenameAction,
    DeleteAction,
    AddDependencyAction,
    ExecuteSqlAction,
    SearchReplaceAction,
    ChatSummaryAction,
    CommandAction,
]


@dataclass
class Extraction:
    """Actions parsed from one response plus non-fatal parse warnings."""
    actions: List[Action] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def of_type(self, action_type: ActionType) -> List[Action]:
        return [a for a in self.actions if a.type == action_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actions": [a.to_dict() for a in self.actions],
            "warnings": list(self.warnings),
        }


# =============================================================================
# Patch engine
# =============================================================================

@dataclass
class PatchRule:
    search: str
    replace: str


@dataclass
class PatchResult:
    success: bool
    content: Optional[str] = None
    error: Optional[str] = None
    reason: Optional[PatchFailure] = None

    @classmethod
    def ok(cls, content: str) -> "PatchResult":
        return cls(success=True, content=content)

    @classmethod
    def fail(cls, reason: PatchFailure, error: str) -> "PatchResult":
        return cls(success=False, error=error, reason=reason)


# =============================================================================
# Compile-check
# =============================================================================

@dataclass
class Diagnostic:
    severity: Severity
    line: int
    column: int
    message: str
    code: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "line": self.line,
            "column": self.column,
            "message": self.message,
            "code": self.code,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Diagnostic":
        return cls(
            severity=Severity(data.get("severity", "error")),
            line=int(data.get("line", 0)),
            column=int(data.get("column", 0)),
            message=data.get("message", ""),
            code=data.get("code"),
        )


@dataclass
class DiagnosticReport:
    """File path -> diagnostics in checker output order. Empty means clean."""
    files: Dict[str, List[Diagnostic]] = field(default_factory=dict)

    @property
    def is_clean(self) -> bool:
        return not any(self.files.values())

    @property
    def problem_count(self) -> int:
        return sum(len(v) for v in self.files.values())

    def add(self, path: str, diagnostic: Diagnostic) -> None:
        self.files.setdefault(path, []).append(diagnostic)

    def to_dict(self) -> Dict[str, Any]:
        return {path: [d.to_dict() for d in diags] for path, diags in self.files.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiagnosticReport":
        return cls(files={path: [Diagnostic.from_dict(d) for d in diags] for path, diags in data.items()})


@dataclass
class VirtualChanges:
    """Writes, renames and deletes to overlay on a project without touching it."""
    writes: List[WriteAction] = field(default_factory=list)
    renames: List[RenameAction] = field(default_factory=list)
    deletes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "writes": [{"path": w.path, "content": w.content} for w in self.writes],
            "renames": [{"from": r.from_path, "to": r.to_path} for r in self.renames],
            "deletes": list(self.deletes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VirtualChanges":
        return cls(
            writes=[WriteAction(path=w["path"], content=w["content"]) for w in data.get("writes", [])],
            renames=[RenameAction(from_path=r["from"], to_path=r["to"]) for r in data.get("renames", [])],
            deletes=list(data.get("deletes", [])),
        )


# =============================================================================
# Orchestrator
# =============================================================================

@dataclass
class Output:
    """A recoverable warning or error collected while applying actions."""
    message: str
    error: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "error": str(self.error) if self.error is not None else None}


@dataclass
class ActionLog:
    """Accumulator threaded through every orchestrator step."""
    written: List[str] = field(default_factory=list)
    renamed: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    warnings: List[Output] = field(default_factory=list)
    errors: List[Output] = field(default_factory=list)

    def warn(self, message: str, error: Any = None) -> None:
        self.warnings.append(Output(message=message, error=error))

    def fail(self, message: str, error: Any = None) -> None:
        self.errors.append(Output(message=message, error=error))


@dataclass
class ChangeSummary:
    """What a response changed, used to stage files and word the commit."""
    written: List[str] = field(default_factory=list)
    renamed: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    packages: List[str] = field(default_factory=list)
    sql_count: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.written or self.renamed or self.deleted or self.packages)


@dataclass
class CommitOutcome:
    commit_hash: str
    extra_files: List[str] = field(default_factory=list)
    extra_files_error: Optional[str] = None


@dataclass
class ExecutionResult:
    files_changed: bool = False
    written_paths: List[str] = field(default_factory=list)
    renamed_paths: List[str] = field(default_factory=list)
    deleted_paths: List[str] = field(default_factory=list)
    warnings: List[Output] = field(default_factory=list)
    errors: List[Output] = field(default_factory=list)
    out_of_band_files: Optional[List[str]] = None
    out_of_band_error: Optional[str] = None
    commit_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files_changed": self.files_changed,
            "written_paths": self.written_paths,
            "renamed_paths": self.renamed_paths,
            "deleted_paths": self.deleted_paths,
            "warnings": [w.to_dict() for w in self.warnings],
            "errors": [e.to_dict() for e in self.errors],
            "out_of_band_files": self.out_of_band_files,
            "out_of_band_error": self.out_of_band_error,
            "commit_id": self.commit_id,
            "error": self.error,
        }
