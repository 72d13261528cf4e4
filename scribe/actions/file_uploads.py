# FILE: scribe/actions/file_uploads.py
"""Per-chat registry of files the user attached to a prompt.

The model references an attachment by writing its upload id as the whole body
of a write tag; the orchestrator swaps in the uploaded bytes. Entries are
taken and cleared at the start of each invocation so an id can never be
substituted in a later turn.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class FileUpload:
    file_path: str  # Where the uploaded bytes are stored
    original_name: str


class FileUploadsState:
    def __init__(self):
        self._lock = threading.Lock()
        self._uploads: Dict[int, Dict[str, FileUpload]] = {}

    def add_upload(self, chat_id: int, upload_id: str, upload: FileUpload) -> None:
        with self._lock:
            self._uploads.setdefault(chat_id, {})[upload_id] = upload

    def get_uploads(self, chat_id: int) -> Dict[str, FileUpload]:
        with self._lock:
            return dict(self._uploads.get(chat_id, {}))

    def clear(self, chat_id: int) -> None:
        with self._lock:
            self._uploads.pop(chat_id, None)

    def take(self, chat_id: int) -> Dict[str, FileUpload]:
        """Return the chat's uploads and clear them in one step."""
        with self._lock:
            return self._uploads.pop(chat_id, {})


_state: Optional[FileUploadsState] = None
_state_lock = threading.Lock()


def get_file_uploads_state() -> FileUploadsState:
    global _state
    with _state_lock:
        if _state is None:
            _state = FileUploadsState()
        return _state
