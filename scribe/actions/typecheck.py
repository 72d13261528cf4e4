# FILE: scribe/actions/typecheck.py
"""Compile-check sandbox: type-check a response's changes before applying them.

The check runs against an overlay, a scratch copy of the project with the
response's deletes, renames and writes applied, so the real tree is never
touched. The checker runs in a separate worker process:

- the caller waits for one message on a queue with a wall-clock timeout
- the worker is torn down as soon as a message arrives, on error and on timeout
- a worker that dies without reporting is a crash, distinct from a reported error

The incremental build cache (tsbuildinfo) lives in cache_dir, one file per
project root. tsc records sources relative to that file, so the overlay is
rebuilt at the same per-project path on every run (cache_dir/<key>/project)
and removed afterwards. Checks of one project are serialized on that path.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import multiprocessing
import os
import queue as queue_module
import re
import shlex
import shutil
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from .config import TYPECHECK_CACHE_DIR, TYPECHECK_CMD, TYPECHECK_TIMEOUT
from .errors import (
    TypecheckCrashError,
    TypecheckTimeoutError,
    TypecheckWorkerError,
)
from .path_utils import safe_join
from .schemas import Diagnostic, DiagnosticReport, Severity, VirtualChanges
from .tag_parser import clean_full_response, get_delete_tags, get_rename_tags, get_write_tags

logger = logging.getLogger(__name__)

# Directories never copied into the overlay
OVERLAY_IGNORE = ("node_modules", ".git")

# tsc --pretty false: "src/App.tsx(12,5): error TS2322: Type 'x' is not ..."
TSC_LINE_RE = re.compile(
    r"^(?P<file>.+?)\((?P<line>\d+),(?P<column>\d+)\):\s+"
    r"(?P<severity>error|warning|message)\s+TS(?P<code>\d+):\s*(?P<message>.*)$"
)

TERMINATE_GRACE_SECONDS = 2.0
POLL_INTERVAL_SECONDS = 0.2

_overlay_locks: Dict[str, threading.Lock] = {}
_overlay_locks_guard = threading.Lock()


# =============================================================================
# Overlay
# =============================================================================

def virtual_changes_from_response(full_response: str) -> VirtualChanges:
    """Writes, renames and deletes of a response, as the orchestrator would apply them."""
    text = clean_full_response(full_response)
    return VirtualChanges(
        writes=get_write_tags(text),
        renames=get_rename_tags(text),
        deletes=get_delete_tags(text),
    )


def project_cache_key(project_root: Union[str, Path]) -> str:
    return hashlib.sha1(os.path.abspath(project_root).encode("utf-8")).hexdigest()[:16]


def overlay_scratch_dir(cache_dir: Union[str, Path], project_root: Union[str, Path]) -> Path:
    """Stable scratch directory for a project's overlay, next to its tsbuildinfo."""
    return Path(cache_dir) / project_cache_key(project_root)


def _overlay_lock(key: str) -> threading.Lock:
    with _overlay_locks_guard:
        lock = _overlay_locks.get(key)
        if lock is None:
            lock = _overlay_locks[key] = threading.Lock()
        return lock


def build_overlay(project_root: Path, changes: VirtualChanges, scratch_dir: Path) -> Path:
    """
    Copy project_root into scratch_dir and apply changes there.

    Order matches the orchestrator: deletes, then renames, then writes.
    node_modules is linked, not copied.
    """
    if not project_root.is_dir():
        raise FileNotFoundError(f"project root does not exist: {project_root}")

    overlay = scratch_dir / "project"
    shutil.copytree(
        project_root,
        overlay,
        symlinks=True,
        ignore=shutil.ignore_patterns(*OVERLAY_IGNORE),
    )
    node_modules = project_root / "node_modules"
    if node_modules.is_dir():
        os.symlink(node_modules.resolve(), overlay / "node_modules", target_is_directory=True)

    for rel in changes.deletes:
        target = safe_join(overlay, rel)
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()

    for rename in changes.renames:
        source = safe_join(overlay, rename.from_path)
        dest = safe_join(overlay, rename.to_path)
        if not source.exists():
            continue
        dest.parent.mkdir(parents=True, exist_ok=True)
        os.replace(source, dest)

    for write in changes.writes:
        target = safe_join(overlay, write.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(write.content, encoding="utf-8")

    return overlay


def parse_tsc_output(output: str, overlay_root: Optional[Path] = None) -> DiagnosticReport:
    """Parse tsc diagnostics; indented continuation lines extend the previous message."""
    report = DiagnosticReport()
    last: Optional[Diagnostic] = None
    root = os.path.abspath(overlay_root) if overlay_root else None

    for raw_line in output.splitlines():
        match = TSC_LINE_RE.match(raw_line.strip())
        if match:
            file_path = match.group("file").replace("\\", "/")
            if root and os.path.isabs(file_path):
                file_path = os.path.relpath(file_path, root).replace("\\", "/")
            last = Diagnostic(
                severity=Severity(match.group("severity")),
                line=int(match.group("line")),
                column=int(match.group("column")),
                message=match.group("message"),
                code=int(match.group("code")),
            )
            report.add(file_path, last)
        elif last is not None and raw_line[:1].isspace() and raw_line.strip():
            last.message += "\n" + raw_line.strip()
    return report


# =============================================================================
# Worker side
# =============================================================================

_child: Optional[subprocess.Popen] = None


def _kill_child_group() -> None:
    if _child is None or _child.poll() is not None:
        return
    try:
        if hasattr(os, "killpg"):
            os.killpg(_child.pid, signal.SIGKILL)
        else:
            _child.kill()
    except (ProcessLookupError, PermissionError):
        pass


def _on_sigterm(signum, frame):
    _kill_child_group()
    raise SystemExit(128 + signum)


def run_typecheck(payload: Dict[str, Any]) -> DiagnosticReport:
    """Build the overlay, run the checker in it and parse its output."""
    global _child

    project_root = Path(payload["project_root"])
    changes = VirtualChanges.from_dict(payload["virtual_changes"])
    cache_dir = Path(payload["cache_dir"])
    cache_dir.mkdir(parents=True, exist_ok=True)
    tsbuildinfo = cache_dir / f"{project_cache_key(project_root)}.tsbuildinfo"
    command = shlex.split(payload["command"].replace("{tsbuildinfo}", shlex.quote(str(tsbuildinfo))))

    scratch = overlay_scratch_dir(cache_dir, project_root)
    # Left behind by a worker that was killed outright
    if scratch.exists():
        shutil.rmtree(scratch)
    scratch.mkdir(parents=True)
    try:
        overlay = build_overlay(project_root, changes, scratch)
        _child = subprocess.Popen(
            command,
            cwd=str(overlay),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=hasattr(os, "killpg"),
        )
        try:
            stdout, stderr = _child.communicate()
        finally:
            _kill_child_group()
        exit_code = _child.returncode
        _child = None

        report = parse_tsc_output(stdout + "\n" + stderr, overlay)
        if exit_code != 0 and report.is_clean:
            raise RuntimeError(
                f"type-checker exited with code {exit_code}: {(stderr or stdout).strip()[:500]}"
            )
        return report
    finally:
        shutil.rmtree(scratch, ignore_errors=True)


def _worker_main(payload: Dict[str, Any], results) -> None:
    """Process entry point: report exactly one {"success", "data"|"error"} message."""
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _on_sigterm)
    try:
        report = run_typecheck(payload)
        results.put({"success": True, "data": report.to_dict()})
    except Exception as e:
        results.put({"success": False, "error": f"{type(e).__name__}: {e}"})


# =============================================================================
# Caller side
# =============================================================================

def _terminate(process) -> None:
    if process.is_alive():
        process.terminate()
        process.join(TERMINATE_GRACE_SECONDS)
    if process.is_alive():
        process.kill()
        process.join()


def supervise_worker(
    payload: Dict[str, Any],
    timeout: float,
    target: Callable[..., None] = _worker_main,
) -> DiagnosticReport:
    """
    Run target(payload, queue) in a fresh process and wait for its one message.

    Raises:
        TypecheckTimeoutError: nothing reported within timeout seconds
        TypecheckWorkerError: the worker reported an error, or exited cleanly without a result
        TypecheckCrashError: the worker exited with a non-zero code without reporting
    """
    ctx = multiprocessing.get_context("spawn")
    results = ctx.Queue()
    process = ctx.Process(target=target, args=(payload, results), daemon=True)
    project = payload.get("project_root")

    logger.info("[typecheck] Starting worker for %s (timeout=%.1fs)", project, timeout)
    process.start()
    deadline = time.monotonic() + timeout
    output: Optional[Dict[str, Any]] = None
    try:
        while output is None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.error("[typecheck] Worker for %s timed out after %.1fs", project, timeout)
                raise TypecheckTimeoutError(f"type-check timed out after {timeout:.1f}s")
            try:
                output = results.get(timeout=min(remaining, POLL_INTERVAL_SECONDS))
            except queue_module.Empty:
                if process.is_alive():
                    continue
                # The message may land just after the process exits
                try:
                    output = results.get(timeout=POLL_INTERVAL_SECONDS)
                except queue_module.Empty:
                    exit_code = process.exitcode
                    if exit_code:
                        logger.error("[typecheck] Worker for %s exited with code %s", project, exit_code)
                        raise TypecheckCrashError(f"worker exited with code {exit_code}", exit_code)
                    raise TypecheckWorkerError("worker exited without reporting a result")
    finally:
        _terminate(process)
        results.close()

    if output.get("success") and output.get("data") is not None:
        logger.info("[typecheck] Worker for %s completed", project)
        return DiagnosticReport.from_dict(output["data"])
    logger.error("[typecheck] Worker for %s failed: %s", project, output.get("error"))
    raise TypecheckWorkerError(output.get("error") or "unknown worker error")


def _supervise_serialized(payload: Dict[str, Any], timeout: float) -> DiagnosticReport:
    # The overlay path is shared by every check of a project
    with _overlay_lock(project_cache_key(payload["project_root"])):
        return supervise_worker(payload, timeout)


async def generate_problem_report(
    full_response: Optional[str] = None,
    *,
    project_root: Union[str, Path],
    virtual_changes: Optional[VirtualChanges] = None,
    cache_dir: Union[str, Path] = TYPECHECK_CACHE_DIR,
    timeout: float = TYPECHECK_TIMEOUT,
    command: str = TYPECHECK_CMD,
) -> DiagnosticReport:
    """
    Type-check project_root as it would look after a response is applied.

    Pass either the raw response text or prebuilt virtual_changes. Advisory:
    callers report failures but never block the write pipeline on them.
    """
    if virtual_changes is None:
        virtual_changes = virtual_changes_from_response(full_response or "")

    payload = {
        "project_root": os.path.abspath(project_root),
        "virtual_changes": virtual_changes.to_dict(),
        "cache_dir": os.path.abspath(cache_dir),
        "command": command,
    }
    return await asyncio.to_thread(_supervise_serialized, payload, timeout)
