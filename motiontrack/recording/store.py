"""
Session persistence.

Stores are blocking by nature (file I/O); the engine service calls them from a
worker thread and feeds the result back onto its event queue.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import ValidationError

from .session import Session

class SessionStoreError(OSError):
    """Raised when a session cannot be written, listed or read."""

class SessionStore(Protocol):
    def save(self, session: Session) -> None: ...

    def list_sessions(self) -> List[str]: ...

    def load(self, session_id: str) -> Session: ...

class JsonSessionStore:
    """
    One pretty-printed JSON file per session.

    Files are named `<prefix>_<session id>.json`; session ids start with the UTC
    start time (YYYYMMDD_HHMMSS) so a name sort is a chronological sort.
    """

    def __init__(self, directory: str, file_prefix: str = "throw_log"):
        self.directory = Path(directory).expanduser()
        self.file_prefix = file_prefix
        self.logger = logging.getLogger(__name__)

    def path_for(self, session_id: str) -> Path:
        return self.directory / f"{self.file_prefix}_{session_id}.json"

    def save(self, session: Session) -> None:
        path = self.path_for(session.id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(session.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise SessionStoreError(f"Failed to save session {session.id}: {e}") from e
        self.logger.info(f"Saved session {session.id} to {path}")

    def list_sessions(self) -> List[str]:
        if not self.directory.exists():
            return []
        prefix = f"{self.file_prefix}_"
        try:
            names = sorted(p.name for p in self.directory.glob(f"{prefix}*.json"))
        except OSError as e:
            raise SessionStoreError(f"Failed to list sessions in {self.directory}: {e}") from e
        return [name[len(prefix):-len(".json")] for name in names]

    def load(self, session_id: str) -> Session:
        path = self.path_for(session_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise SessionStoreError(f"Failed to read session {session_id}: {e}") from e
        try:
            return Session.model_validate_json(raw)
        except ValidationError as e:
            raise SessionStoreError(f"Session file {path.name} is not a valid session: {e}") from e

class InMemorySessionStore:
    """Keeps deep copies of saved sessions. Used in tests and when persistence is off."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self.fail_next: Optional[Exception] = None

    def save(self, session: Session) -> None:
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise SessionStoreError(str(error)) from error
        self._sessions[session.id] = session.model_copy(deep=True)

    def list_sessions(self) -> List[str]:
        return sorted(self._sessions)

    def load(self, session_id: str) -> Session:
        try:
            return self._sessions[session_id].model_copy(deep=True)
        except KeyError:
            raise SessionStoreError(f"Unknown session: {session_id}") from None
