# FILE: scribe/actions/response_processor.py
"""Response processor: apply the actions in a model response to its project.

Execution order is fixed, whatever order the tags appear in:

    0. look up chat, project and the assistant message        (fatal)
    1. snapshot the database branch, if the project has one   (fatal)
    2. execute SQL, if the project has a linked database      (errors, continue)
    3. install all requested packages in one call             (error, continue)
    4. delete paths                                           (errors, continue)
    5. rename paths                                           (warnings/errors, continue)
    6. apply search-replace patches                           (silent on patch failure)
    7. write files                                            (errors, continue)

Deletes run before renames so a rename target is free, renames before edits
so edits land on final paths, and plain writes last because they are the most
authoritative action for a path.

Recoverable problems are collected in an ActionLog and, in a finally block,
appended to the stored message as <output> annotations, also when a fatal
error aborts the run. Search-replace failures are only logged: the model sees
the unchanged file next turn and corrects itself with another edit.
"""

from __future__ import annotations

import asyncio
import html
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from sqlalchemy.orm import Session

from scribe import git_utils
from scribe.memory import service as memory_service
from scribe.memory.models import Message, Project

from .commit_manager import commit_changes
from .config import LOCK_FILES, PACKAGE_MANIFEST, PipelineSettings
from .db_versioning import store_db_snapshot_at_current_version
from .dependencies import execute_add_dependency
from .errors import DatabaseVersioningError, MessageNotFoundError, ProjectNotFoundError
from .file_uploads import FileUpload, FileUploadsState, get_file_uploads_state
from .migrations import write_migration_file
from .path_utils import (
    get_function_name_from_path,
    is_server_function,
    read_function_source,
    resolve_project_root,
    safe_join,
)
from .remote_backend import RemoteBackendClient, get_remote_backend_client
from .schemas import (
    ActionLog,
    ChangeSummary,
    ChatSummaryAction,
    DeleteAction,
    ExecuteSqlAction,
    ExecutionResult,
    Output,
    RenameAction,
    SearchReplaceAction,
    WriteAction,
)
from .search_replace import apply_search_replace, describe_failure
from .tag_parser import extract_with_warnings, get_search_replace_tags, split_actions

logger = logging.getLogger(__name__)

APPROVED = "approved"


@dataclass
class _Run:
    """Everything one invocation's steps share."""
    db: Session
    project: Project
    root: Path
    message: Message
    backend: RemoteBackendClient
    settings: PipelineSettings
    log: ActionLog

    @property
    def remote_project_id(self) -> Optional[str]:
        return self.project.linked_database_project_id


# =============================================================================
# Dry run
# =============================================================================

def dry_run_search_replace(full_response: str, project_root: Union[str, Path]) -> List[Dict[str, str]]:
    """
    Check every search-replace tag against the files on disk without writing.

    Returns one {"file_path", "error"} entry per tag that would fail.
    """
    issues: List[Dict[str, str]] = []
    for tag in get_search_replace_tags(full_response):
        try:
            full_path = safe_join(project_root, tag.path)
            if not full_path.is_file():
                issues.append({
                    "file_path": tag.path,
                    "error": f"Search-replace target file does not exist: {tag.path}",
                })
                continue
            result = apply_search_replace(full_path.read_text(encoding="utf-8"), tag.rules)
            if not result.success:
                issues.append({
                    "file_path": tag.path,
                    "error": f"Unable to apply search-replace to file because: {result.error}",
                })
        except (OSError, ValueError) as e:
            issues.append({"file_path": tag.path, "error": str(e)})
    return issues


# =============================================================================
# Steps
# =============================================================================

async def _execute_sql(run: _Run, queries: List[ExecuteSqlAction]) -> None:
    """Run each statement remotely. Failures are errors; the next statement still runs."""
    for query in queries:
        try:
            await asyncio.to_thread(run.backend.execute_sql, run.remote_project_id, query.statement)
        except Exception as e:
            run.log.fail(f"Failed to execute SQL query: {query.statement}", e)
            continue

        if run.settings.write_sql_migrations:
            try:
                run.log.written.append(write_migration_file(run.root, query.statement, query.description))
            except Exception as e:
                run.log.fail(f"Failed to write SQL migration file for: {query.description}", e)
    logger.info("[response_processor] Executed %d SQL queries", len(queries))


async def _add_dependencies(run: _Run, packages: List[str]) -> None:
    """One install for the whole list. Manifest and lock files count as written either way."""
    try:
        await execute_add_dependency(run.db, run.message, packages, run.root)
    except Exception as e:
        run.log.fail(f"Failed to add dependencies: {', '.join(packages)}", e)

    run.log.written.append(PACKAGE_MANIFEST)
    for lock_file in LOCK_FILES:
        if (run.root / lock_file).exists():
            run.log.written.append(lock_file)


async def _deploy(run: _Run, path: str, content: str, message: str) -> None:
    try:
        await asyncio.to_thread(
            run.backend.deploy_function,
            run.remote_project_id,
            get_function_name_from_path(path),
            content,
        )
    except Exception as e:
        run.log.fail(message, e)


async def _delete_paths(run: _Run, deletes: List[DeleteAction]) -> None:
    """Missing paths are logged and skipped. A failed remote teardown is an error."""
    for action in deletes:
        full_path = safe_join(run.root, action.path)
        if full_path.exists() or full_path.is_symlink():
            if full_path.is_dir() and not full_path.is_symlink():
                shutil.rmtree(full_path)
            else:
                full_path.unlink()
            logger.info("[response_processor] Deleted %s", full_path)
            run.log.deleted.append(action.path)
            try:
                git_utils.git_remove(str(run.root), action.path)
            except git_utils.GitCommandError as e:
                logger.warning("[response_processor] Failed to git remove deleted file %s: %s", action.path, e)
        else:
            logger.warning("[response_processor] File to delete does not exist: %s", full_path)

        if is_server_function(action.path) and run.remote_project_id:
            try:
                await asyncio.to_thread(
                    run.backend.delete_function,
                    run.remote_project_id,
                    get_function_name_from_path(action.path),
                )
            except Exception as e:
                run.log.fail(f"Failed to delete remote function: {action.path}", e)


async def _rename_paths(run: _Run, renames: List[RenameAction]) -> None:
    """
    Missing sources are logged and skipped. Remote teardown of the old name is
    a warning on failure, deploying the new name an error. Neither undoes the
    local rename.
    """
    for action in renames:
        from_path = safe_join(run.root, action.from_path)
        to_path = safe_join(run.root, action.to_path)
        to_path.parent.mkdir(parents=True, exist_ok=True)

        if from_path.exists():
            os.replace(from_path, to_path)
            logger.info("[response_processor] Renamed %s -> %s", from_path, to_path)
            run.log.renamed.append(action.to_path)
            try:
                git_utils.git_add(str(run.root), action.to_path)
            except git_utils.GitCommandError as e:
                logger.warning("[response_processor] Failed to git add renamed file %s: %s", action.to_path, e)
            try:
                git_utils.git_remove(str(run.root), action.from_path)
            except git_utils.GitCommandError as e:
                logger.warning("[response_processor] Failed to git remove old file %s: %s", action.from_path, e)
        else:
            logger.warning("[response_processor] Source file for rename does not exist: %s", from_path)

        if not run.remote_project_id:
            continue
        if is_server_function(action.from_path):
            try:
                await asyncio.to_thread(
                    run.backend.delete_function,
                    run.remote_project_id,
                    get_function_name_from_path(action.from_path),
                )
            except Exception as e:
                run.log.warn(
                    f"Failed to delete remote function: {action.from_path} as part of renaming "
                    f"{action.from_path} to {action.to_path}",
                    e,
                )
        if is_server_function(action.to_path):
            try:
                content = read_function_source(to_path)
            except OSError as e:
                run.log.fail(
                    f"Failed to deploy remote function: {action.to_path} as part of renaming "
                    f"{action.from_path} to {action.to_path}",
                    e,
                )
                continue
            await _deploy(
                run,
                action.to_path,
                content,
                f"Failed to deploy remote function: {action.to_path} as part of renaming "
                f"{action.from_path} to {action.to_path}",
            )


async def _apply_search_replace(run: _Run, tags: List[SearchReplaceAction]) -> None:
    """
    A missing target or a patch that does not apply is only logged (the model
    self-corrects next turn). Unexpected I/O failures are errors.
    """
    for tag in tags:
        full_path = safe_join(run.root, tag.path)
        try:
            if not full_path.is_file():
                logger.warning("[response_processor] Search-replace target file does not exist: %s", tag.path)
                continue
            result = apply_search_replace(full_path.read_text(encoding="utf-8"), tag.rules)
            if not result.success:
                logger.warning(
                    "[response_processor] Failed to apply search-replace to %s: %s", tag.path, describe_failure(result),
                )
                continue
            with open(full_path, "w", encoding="utf-8", newline="") as f:
                f.write(result.content)
            run.log.written.append(tag.path)
        except OSError as e:
            run.log.fail(f"Error applying search-replace to {tag.path}", e)
            continue

        if is_server_function(tag.path) and run.remote_project_id:
            await _deploy(run, tag.path, result.content, f"Failed to deploy remote function after search-replace: {tag.path}")


async def _write_files(run: _Run, writes: List[WriteAction], uploads: Dict[str, FileUpload]) -> None:
    """Upload ids in a tag body are swapped for the uploaded bytes. Deploy failures are errors."""
    for tag in writes:
        content: Union[str, bytes] = tag.content
        full_path = safe_join(run.root, tag.path)

        upload = uploads.get(tag.content.strip()) if uploads else None
        if upload is not None:
            try:
                content = Path(upload.file_path).read_bytes()
                logger.info("[response_processor] Replaced upload id %s with %s", tag.content.strip(), upload.original_name)
            except OSError as e:
                logger.error("[response_processor] Failed to read uploaded file %s: %s", upload.original_name, e)
                run.log.fail(f"Failed to read uploaded file: {upload.original_name}", e)

        full_path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            full_path.write_bytes(content)
        else:
            with open(full_path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        logger.info("[response_processor] Wrote %s", full_path)
        run.log.written.append(tag.path)

        if is_server_function(tag.path) and isinstance(content, str) and run.remote_project_id:
            await _deploy(run, tag.path, content, f"Failed to deploy remote function: {tag.path}")


# =============================================================================
# Annotations
# =============================================================================

def _output_tag(kind: str, output: Output) -> str:
    error = "" if output.error is None else html.escape(str(output.error), quote=False)
    return f'<output type="{kind}" message="{html.escape(output.message, quote=True)}">{error}</output>'


def format_output_annotations(warnings: List[Output], errors: List[Output]) -> str:
    """Render collected problems as <output> tags appended to the message."""
    lines = [_output_tag("warning", w) for w in warnings]
    lines += [_output_tag("error", e) for e in errors]
    return "\n".join(lines)


def _flush_annotations(db: Session, message_id: int, log: ActionLog) -> None:
    if not log.warnings and not log.errors:
        return
    message = memory_service.get_message(db, message_id)
    if message is None:
        return
    appended = format_output_annotations(log.warnings, log.errors)
    memory_service.update_message_content(db, message_id, f"{message.content}\n\n{appended}")


# =============================================================================
# Entry point
# =============================================================================

async def process_full_response_actions(
    db: Session,
    full_response: str,
    chat_id: int,
    message_id: int,
    chat_summary: Optional[str] = None,
    *,
    settings: Optional[PipelineSettings] = None,
    backend: Optional[RemoteBackendClient] = None,
    uploads_state: Optional[FileUploadsState] = None,
) -> ExecutionResult:
    """
    Apply every action in full_response to the chat's project and commit.

    Returns an ExecutionResult; on a fatal error only its `error` is set.
    """
    settings = settings or PipelineSettings.from_env()
    uploads_state = uploads_state or get_file_uploads_state()
    uploads = uploads_state.take(chat_id)
    log = ActionLog()
    message_found = False

    logger.info("[response_processor] Processing response for chat %s, message %s", chat_id, message_id)
    try:
        chat = memory_service.get_chat(db, chat_id)
        if chat is None or chat.project is None:
            raise ProjectNotFoundError(f"No project found for chat ID: {chat_id}")
        project = chat.project
        root = resolve_project_root(project.root_path)

        message = memory_service.get_assistant_message(db, message_id, chat_id)
        if message is None:
            raise MessageNotFoundError(f"No assistant message found for ID: {message_id}")
        message_found = True

        if project.linked_database_project_id and project.database_branch_id:
            try:
                store_db_snapshot_at_current_version(db, project, root)
            except DatabaseVersioningError as e:
                raise DatabaseVersioningError(
                    f"Could not snapshot database branch; database versioning is not working: {e}"
                ) from e

        extraction = extract_with_warnings(full_response)
        writes, renames, deletes, packages, queries, search_replace = split_actions(extraction.actions)
        if not project.linked_database_project_id:
            queries = []
        if chat_summary is None:
            chat_summary = next(
                (a.text for a in extraction.actions if isinstance(a, ChatSummaryAction)), None
            )

        run = _Run(
            db=db,
            project=project,
            root=root,
            message=message,
            backend=backend or get_remote_backend_client(),
            settings=settings,
            log=log,
        )

        if queries:
            await _execute_sql(run, queries)
        if packages:
            await _add_dependencies(run, packages)
        await _delete_paths(run, deletes)
        await _rename_paths(run, renames)
        await _apply_search_replace(run, search_replace)
        await _write_files(run, writes, uploads)

        summary = ChangeSummary(
            written=list(log.written),
            renamed=list(log.renamed),
            deleted=list(log.deleted),
            packages=list(packages),
            sql_count=len(queries),
        )
        result = ExecutionResult(
            files_changed=summary.has_changes,
            written_paths=summary.written,
            renamed_paths=summary.renamed,
            deleted_paths=summary.deleted,
            warnings=log.warnings,
            errors=log.errors,
        )

        if summary.has_changes:
            outcome = commit_changes(db, root, message_id, summary, chat_summary)
            result.commit_id = outcome.commit_hash
            if outcome.extra_files:
                result.out_of_band_files = outcome.extra_files
                result.out_of_band_error = outcome.extra_files_error

        logger.info("[response_processor] Marking message %s approved (has_changes=%s)", message_id, summary.has_changes)
        memory_service.set_message_approval(db, message_id, APPROVED)
        return result

    except Exception as e:
        logger.exception("[response_processor] Error processing response for chat %s: %s", chat_id, e)
        return ExecutionResult(error=str(e))

    finally:
        if message_found:
            _flush_annotations(db, message_id, log)
