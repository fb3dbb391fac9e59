# services/unanswered_log.py
import os
import json
import uuid
import logging
import threading
from contextlib import contextmanager
from pydantic import BaseModel
from typing import Any, Dict, List, Optional

import portalocker

from config import UNANSWERED_QUESTIONS_FILE
from models.question import utc_now
from models.search import SearchRequest
from services.errors import LoggingError

logger = logging.getLogger(__name__)

CLEAR_EVENT = "clear"


class SearchedBy(BaseModel):
    userId: Optional[str] = None
    userAgent: Optional[str] = None


class UnansweredEntry(BaseModel):
    id: str
    timestamp: str
    lastSearched: str
    searchCount: int = 1
    directions: Optional[str] = None
    question: Optional[str] = None
    questionImage: Optional[str] = None
    passage: Optional[str] = None
    options: Optional[List[Dict[str, Any]]] = None
    searchedBy: SearchedBy = SearchedBy()


class RecordResult(BaseModel):
    success: bool
    totalUnanswered: int
    entry: UnansweredEntry


def fingerprint_key(fingerprint: dict) -> str:
    # Blank and missing values compare equal
    normalized = {key: (value if value not in ("", None) else None) for key, value in fingerprint.items()}
    return json.dumps(normalized, sort_keys=True)


def _by_search_count(entry: UnansweredEntry):
    return (entry.searchCount, entry.lastSearched)


class UnansweredLog:
    """Questions that found no match, deduplicated by content fingerprint.

    Every search is appended to a JSON-lines file as one event under an
    exclusive file lock, so several worker processes can share one log. Each
    instance keeps an index of the events it has replayed and reads whatever
    other processes appended before answering.
    """

    def __init__(self, path: str = UNANSWERED_QUESTIONS_FILE):
        self.path = path
        self._lock = threading.Lock()
        self._entries: Dict[str, UnansweredEntry] = {}
        self._offset = 0
        self._head: Optional[bytes] = None

    @contextmanager
    def _locked(self, lock_type: int = portalocker.LOCK_EX):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "a+b") as f:
            portalocker.lock(f, lock_type)
            try:
                yield f
            finally:
                portalocker.unlock(f)

    def _catch_up(self, f) -> None:
        """Apply events appended since the last read; replay everything if the file was cleared."""
        f.seek(0)
        head = f.readline()
        size = f.seek(0, os.SEEK_END)
        if head != self._head or size < self._offset:
            self._entries = {}
            self._offset = 0
            self._head = head

        f.seek(self._offset)
        data = f.read()
        # A line without its newline is still being written
        end = data.rfind(b"\n") + 1
        for line in data[:end].splitlines():
            if not line.strip():
                continue
            try:
                self._apply(json.loads(line))
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed unanswered log line: {str(e)}")
        self._offset += end

    def _apply(self, event: dict) -> Optional[UnansweredEntry]:
        if event.get("type") == CLEAR_EVENT:
            self._entries = {}
            return None

        key = fingerprint_key(event["fingerprint"])
        entry = self._entries.get(key)
        if entry is None:
            fingerprint = event["fingerprint"]
            entry = UnansweredEntry(
                id=event["id"],
                timestamp=event["timestamp"],
                lastSearched=event["timestamp"],
                directions=fingerprint.get("directions"),
                question=fingerprint.get("question"),
                questionImage=fingerprint.get("questionImage"),
                passage=event.get("passage"),
                options=fingerprint.get("options"),
                searchedBy=SearchedBy(userId=event.get("userId"), userAgent=event.get("userAgent")),
            )
            self._entries[key] = entry
        else:
            # Keep dict order = order of most recent search
            self._entries[key] = self._entries.pop(key)
            entry.searchCount += 1
            entry.lastSearched = event["timestamp"]
            if event.get("userId") and not entry.searchedBy.userId:
                entry.searchedBy.userId = event["userId"]
            if event.get("userAgent"):
                entry.searchedBy.userAgent = event["userAgent"]
        return entry

    @staticmethod
    def _write(f, event: dict) -> None:
        f.write((json.dumps(event) + "\n").encode("utf-8"))
        f.flush()

    def record(self, request: SearchRequest, user_id: Optional[str] = None, user_agent: Optional[str] = None) -> RecordResult:
        """Log a search that found no match; repeats bump the search count."""
        fingerprint = request.fingerprint()
        key = fingerprint_key(fingerprint)
        with self._lock:
            try:
                with self._locked() as f:
                    self._catch_up(f)
                    existing = self._entries.get(key)
                    self._write(f, {
                        "id": existing.id if existing else uuid.uuid4().hex,
                        "timestamp": utc_now(),
                        "fingerprint": fingerprint,
                        "passage": request.passage,
                        "userId": str(user_id) if user_id else None,
                        "userAgent": user_agent,
                    })
                    self._catch_up(f)
            except (OSError, portalocker.LockException) as e:
                raise LoggingError(f"Error saving unanswered question: {str(e)}") from e
            entry = self._entries[key].model_copy(deep=True)
            total = len(self._entries)

        if entry.searchCount > 1:
            logger.info(f"Updated unanswered question count: {entry.searchCount}")
        else:
            logger.info(f"Logged new unanswered question: {(entry.question or entry.directions or '')[:50]!r}")
        return RecordResult(success=True, totalUnanswered=total, entry=entry)

    def _snapshot(self) -> List[UnansweredEntry]:
        with self._lock:
            try:
                with self._locked(portalocker.LOCK_SH) as f:
                    self._catch_up(f)
            except (OSError, portalocker.LockException) as e:
                raise LoggingError(f"Error loading unanswered questions: {str(e)}") from e
            return [entry.model_copy(deep=True) for entry in self._entries.values()]

    def all(self) -> List[UnansweredEntry]:
        return sorted(self._snapshot(), key=_by_search_count, reverse=True)

    def most_searched(self, limit: int = 25) -> List[UnansweredEntry]:
        return self.all()[:limit]

    def recent(self, limit: int = 25) -> List[UnansweredEntry]:
        return list(reversed(self._snapshot()))[:limit]

    def stats(self) -> dict:
        entries = self.all()
        return {
            "totalUnanswered": len(entries),
            "mostSearched": entries[:5],
            "recentlyAdded": sorted(entries, key=lambda entry: entry.timestamp, reverse=True)[:5],
            "totalSearches": sum(entry.searchCount for entry in entries),
        }

    def clear(self) -> None:
        """Truncate the log; the clear marker tells other processes to drop their index."""
        with self._lock:
            try:
                with self._locked() as f:
                    f.truncate(0)
                    self._write(f, {"type": CLEAR_EVENT, "id": uuid.uuid4().hex, "timestamp": utc_now()})
                    self._catch_up(f)
            except (OSError, portalocker.LockException) as e:
                raise LoggingError(f"Error clearing unanswered questions: {str(e)}") from e
        logger.info("Cleared all unanswered questions")


unanswered_log = UnansweredLog()


def get_unanswered_log() -> UnansweredLog:
    return unanswered_log
