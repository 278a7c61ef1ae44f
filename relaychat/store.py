from __future__ import annotations

import copy
import json
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterator, List, Optional


logger = logging.getLogger("relaychat")

Record = Dict[str, Any]

USERS_TABLE = "users"
CHATS_TABLE = "chats"


class StoreCorruptError(RuntimeError):
    """A table file exists but does not hold a JSON array of objects."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"corrupt table file {path}: {reason}")
        self.path = path


class RecordStore:
    """JSON-array-per-file tables with atomic replace on save.

    Each table is one file ``<directory>/<name>.json``. Writes go to a
    ``.tmp`` sibling which is then renamed over the target, so the live file
    is always a complete version. ``transaction`` serializes load-modify-save
    cycles per table within this process and skips the write when nothing
    changed.
    """

    def __init__(self, directory: str | os.PathLike, corrupt_policy: str = "empty") -> None:
        self.directory = Path(directory)
        self.corrupt_policy = corrupt_policy
        self._guard = Lock()
        self._locks: Dict[str, Lock] = {}

    def path_for(self, name: str) -> Path:
        return self.directory / f"{name}.json"

    def ensure(self, name: str) -> None:
        path = self.path_for(name)
        if path.exists():
            return
        self.directory.mkdir(parents=True, exist_ok=True)
        self.save(name, [])

    def load(self, name: str) -> List[Record]:
        path = self.path_for(name)
        if not path.exists():
            return []
        text = path.read_text(encoding="utf-8")
        if not text.strip():
            return []
        try:
            data = json.loads(text)
        except ValueError as e:
            return self._corrupt(path, str(e))
        if not isinstance(data, list):
            return self._corrupt(path, f"expected array, got {type(data).__name__}")
        if not all(isinstance(r, dict) for r in data):
            return self._corrupt(path, "expected an array of objects")
        return data

    def _corrupt(self, path: Path, reason: str) -> List[Record]:
        if self.corrupt_policy == "raise":
            raise StoreCorruptError(path, reason)
        # the next save replaces the damaged file with an empty-derived table
        logger.error("Discarding unreadable table %s: %s", path, reason)
        return []

    def save(self, name: str, records: List[Record]) -> None:
        path = self.path_for(name)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, path)
        except OSError:
            logger.exception("Failed to write table %s", path)
            raise

    def _lock_for(self, name: str) -> Lock:
        with self._guard:
            return self._locks.setdefault(name, Lock())

    @contextmanager
    def transaction(self, name: str) -> Iterator[List[Record]]:
        with self._lock_for(name):
            records = self.load(name)
            before = copy.deepcopy(records)
            yield records
            if records != before:
                self.save(name, records)


class PlaintextCredentials:
    """Stores and compares passwords as given.

    Swap for a hashing implementation with the same two methods.
    """

    def encode(self, password: str) -> str:
        return password

    def verify(self, stored: Optional[str], password: str) -> bool:
        return stored is not None and stored == password


class UserDirectory:
    def __init__(self, store: RecordStore, credentials: Optional[PlaintextCredentials] = None) -> None:
        self.store = store
        self.credentials = credentials or PlaintextCredentials()
        store.ensure(USERS_TABLE)

    def find_by_id(self, user_id: str) -> Optional[Record]:
        for u in self.store.load(USERS_TABLE):
            if u.get("userId") == user_id:
                return u
        return None

    def exists(self, user_id: str) -> bool:
        return self.find_by_id(user_id) is not None

    def create(self, user: Record) -> None:
        with self.store.transaction(USERS_TABLE) as users:
            users.append(user)

    def register(self, user_id: str, password: str, role: str = "regular") -> bool:
        """Insert a new account unless ``user_id`` is taken. Returns False on duplicate."""
        with self.store.transaction(USERS_TABLE) as users:
            if any(u.get("userId") == user_id for u in users):
                return False
            users.append(
                {"userId": user_id, "password": self.credentials.encode(password), "role": role}
            )
        return True

    def authenticate(self, user_id: str, password: str) -> Optional[Record]:
        user = self.find_by_id(user_id)
        if user is None or not self.credentials.verify(user.get("password"), password):
            return None
        return user


class ConversationLog:
    def __init__(self, store: RecordStore) -> None:
        self.store = store
        store.ensure(CHATS_TABLE)

    def recent_turns(self, user_id: Optional[str], n: int) -> List[Record]:
        if n <= 0:
            return []
        turns = [t for t in self.store.load(CHATS_TABLE) if t.get("userId") == user_id]
        return turns[-n:]

    def append(self, turn: Record) -> None:
        with self.store.transaction(CHATS_TABLE) as turns:
            turns.append(turn)
