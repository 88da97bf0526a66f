"""
Record Store

Every entity type (users, shops, items, orders) lives in one named collection
that is read and written as a whole. Two backends share the same contract:

- JsonFileStore: one ``<collection>.json`` file per collection under DATA_DIR
- MongoStore: one MongoDB collection per name, used when DATABASE_URL and
  DATABASE_NAME are set

Callers that read-modify-write must do so inside ``store.locked(...)`` so that
concurrent requests touching the same collections are serialized.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Union

from bson import ObjectId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from errors import StoreFailure

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

USERS = "users"
SHOPS = "shops"
ITEMS = "items"
ORDERS = "orders"
COLLECTIONS = (USERS, SHOPS, ITEMS, ORDERS)


def new_id(kind: str) -> str:
    return f"{kind}_{ObjectId()}"


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    return dict(data)


class RecordStore(ABC):
    """Read-all / write-all access to named record collections."""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, name: str) -> threading.RLock:
        with self._locks_guard:
            if name not in self._locks:
                self._locks[name] = threading.RLock()
            return self._locks[name]

    @contextmanager
    def locked(self, *names: str) -> Iterator["RecordStore"]:
        # Sorted acquisition keeps multi-collection sections deadlock free.
        locks = [self._lock_for(n) for n in sorted(set(names))]
        for lock in locks:
            lock.acquire()
        try:
            yield self
        finally:
            for lock in reversed(locks):
                lock.release()

    # Backend hooks
    @abstractmethod
    def _load(self, name: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def _dump(self, name: str, records: List[Dict[str, Any]]) -> None:
        ...

    def read_all(self, name: str) -> List[Dict[str, Any]]:
        with self.locked(name):
            return self._load(name)

    def write_all(self, name: str, records: List[Union[BaseModel, dict]]) -> None:
        with self.locked(name):
            self._dump(name, [_to_dict(r) for r in records])

    def find(self, name: str, _id: str) -> Optional[Dict[str, Any]]:
        for record in self.read_all(name):
            if record.get("id") == _id:
                return record
        return None

    def append(self, name: str, record: Union[BaseModel, dict]) -> Dict[str, Any]:
        payload = _to_dict(record)
        with self.locked(name):
            records = self._load(name)
            records.append(payload)
            self._dump(name, records)
        return payload

    def update(self, name: str, _id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self.locked(name):
            records = self._load(name)
            for i, record in enumerate(records):
                if record.get("id") == _id:
                    records[i] = {**record, **changes}
                    self._dump(name, records)
                    return records[i]
        return None

    def delete(self, name: str, _id: str) -> bool:
        with self.locked(name):
            records = self._load(name)
            remaining = [r for r in records if r.get("id") != _id]
            if len(remaining) == len(records):
                return False
            self._dump(name, remaining)
        return True


class JsonFileStore(RecordStore):
    def __init__(self, data_dir: str):
        super().__init__()
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)

    def _path(self, name: str) -> str:
        return os.path.join(self.data_dir, f"{name}.json")

    def _load(self, name: str) -> List[Dict[str, Any]]:
        path = self._path(name)
        if not os.path.exists(path):
            return []
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
            if not content.strip():
                return []
            data = json.loads(content)
        except (OSError, ValueError) as e:
            logger.error("Failed to read collection %s from %s", name, path, exc_info=True)
            raise StoreFailure(f"Failed to read {name}") from e
        if not isinstance(data, list):
            raise StoreFailure(f"Collection {name} is corrupt")
        return data

    def _dump(self, name: str, records: List[Dict[str, Any]]) -> None:
        path = self._path(name)
        tmp = path + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(records, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to write collection %s to %s", name, path, exc_info=True)
            raise StoreFailure(f"Failed to write {name}") from e


class MongoStore(RecordStore):
    def __init__(self, database_url: str, database_name: str):
        super().__init__()
        self._client = MongoClient(database_url)
        self.db = self._client[database_name]

    def _load(self, name: str) -> List[Dict[str, Any]]:
        try:
            return list(self.db[name].find({}, {"_id": 0}))
        except PyMongoError as e:
            logger.error("Failed to read collection %s", name, exc_info=True)
            raise StoreFailure(f"Failed to read {name}") from e

    def _dump(self, name: str, records: List[Dict[str, Any]]) -> None:
        try:
            self.db[name].delete_many({})
            if records:
                # insert_many adds _id to the dicts it is given
                self.db[name].insert_many([dict(r) for r in records])
        except PyMongoError as e:
            logger.error("Failed to write collection %s", name, exc_info=True)
            raise StoreFailure(f"Failed to write {name}") from e


def create_store() -> RecordStore:
    database_url = os.getenv("DATABASE_URL")
    database_name = os.getenv("DATABASE_NAME")
    if database_url and database_name:
        logger.info("Using MongoDB record store %s", database_name)
        return MongoStore(database_url, database_name)
    data_dir = os.getenv("DATA_DIR", os.path.join(os.getcwd(), "data"))
    logger.info("Using JSON record store in %s", data_dir)
    return JsonFileStore(data_dir)


_store: Optional[RecordStore] = None
_store_lock = threading.Lock()


def get_store() -> RecordStore:
    """FastAPI dependency returning the process-wide store."""
    global _store
    with _store_lock:
        if _store is None:
            _store = create_store()
    return _store
