"""
Persistence adapter for the application list.

The whole ordered list is stored as one blob under a fixed key. Records are
written field-for-field with their camelCase names; absent optional fields
are omitted. There is no schema version.

Backends:
    JsonFileStorage  - {key: [records...]} in a local JSON file (default)
    MongoStorage     - one {_id: key, value: "<json>"} document (DATABASE_URL set)
    MemoryStorage    - in-process, for tests
"""
import json
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from config import Settings
from errors import PersistenceFailure
from schemas import GatePassApplication

logger = logging.getLogger(__name__)

_application_list = TypeAdapter(List[GatePassApplication])


def to_documents(records: List[GatePassApplication]) -> List[dict]:
    return [r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in records]


def from_documents(documents) -> List[GatePassApplication]:
    if not documents:
        return []
    try:
        return _application_list.validate_python(documents)
    except PydanticValidationError as e:
        raise PersistenceFailure(f"Stored application list is invalid: {e.error_count()} error(s)") from e


def dump_applications(records: List[GatePassApplication]) -> str:
    return json.dumps(to_documents(records), ensure_ascii=False)


def load_applications(blob: Optional[str]) -> List[GatePassApplication]:
    if not blob:
        return []
    try:
        documents = json.loads(blob)
    except json.JSONDecodeError as e:
        raise PersistenceFailure(f"Stored application list is not valid JSON: {e}") from e
    return from_documents(documents)


class MemoryStorage:
    backend = "memory"

    def __init__(self, key: str = "rgipt_gatepasses_db"):
        self.key = key
        self.blobs = {}

    def load(self) -> List[GatePassApplication]:
        return load_applications(self.blobs.get(self.key))

    def save(self, records: List[GatePassApplication]) -> None:
        self.blobs[self.key] = dump_applications(records)


class JsonFileStorage:
    backend = "json-file"

    def __init__(self, path: str, key: str = "rgipt_gatepasses_db"):
        self.path = path
        self.key = key

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceFailure(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceFailure(f"{self.path} does not hold a key-value object")
        return data

    def _set_aside(self) -> None:
        """Move an unreadable file out of the way so the next save cannot destroy it."""
        aside = self.path + ".corrupt"
        try:
            os.replace(self.path, aside)
        except OSError as e:
            raise PersistenceFailure(f"Cannot move unreadable {self.path} aside: {e}") from e
        logger.warning("Moved unreadable storage file %s to %s", self.path, aside)

    def load(self) -> List[GatePassApplication]:
        try:
            return from_documents(self._read().get(self.key))
        except PersistenceFailure:
            if os.path.exists(self.path):
                self._set_aside()
            raise

    def save(self, records: List[GatePassApplication]) -> None:
        # Other keys in the same file are preserved
        try:
            data = self._read()
        except PersistenceFailure:
            self._set_aside()
            data = {}
        data[self.key] = to_documents(records)

        directory = os.path.dirname(self.path)
        tmp_path = self.path + ".tmp"
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceFailure(f"Cannot write {self.path}: {e}") from e


class MongoStorage:
    backend = "mongodb"

    def __init__(self, collection, key: str = "rgipt_gatepasses_db"):
        self.collection = collection
        self.key = key

    def load(self) -> List[GatePassApplication]:
        try:
            doc = self.collection.find_one({"_id": self.key})
        except PyMongoError as e:
            raise PersistenceFailure(f"MongoDB read failed: {e}") from e
        return load_applications(doc.get("value") if doc else None)

    def save(self, records: List[GatePassApplication]) -> None:
        doc = {
            "_id": self.key,
            "value": dump_applications(records),
            "updated_at": datetime.now(timezone.utc),
        }
        try:
            self.collection.replace_one({"_id": self.key}, doc, upsert=True)
        except PyMongoError as e:
            raise PersistenceFailure(f"MongoDB write failed: {e}") from e


def connect_mongo(settings: Settings):
    client = MongoClient(settings.DATABASE_URL, serverSelectionTimeoutMS=5000)
    return client[settings.DATABASE_NAME]


def get_storage(settings: Settings):
    if settings.uses_mongo:
        db = connect_mongo(settings)
        logger.info("Persisting applications to MongoDB database %s", settings.DATABASE_NAME)
        return MongoStorage(db["kvstore"], settings.STORAGE_KEY)
    logger.info("Persisting applications to %s", settings.STORAGE_PATH)
    return JsonFileStorage(settings.STORAGE_PATH, settings.STORAGE_KEY)
