"""Persistence adapter: blob format, round trip, file and MongoDB backends."""
import json

import pytest
from pymongo.errors import PyMongoError

from conftest import make_form
from database import (
    JsonFileStorage,
    MemoryStorage,
    MongoStorage,
    dump_applications,
    get_storage,
    load_applications,
)
from errors import PersistenceFailure
from schemas import ApplicationStatus


@pytest.fixture
def mixed_records(store):
    """One record per status plus one approved pass with both movements logged."""
    store.create(make_form(place="Pending"))
    store.approve(store.create(make_form(place="Approved")).id)
    store.decline(store.create(make_form(place="Declined")).id, "Insufficient notice")
    closed = store.approve(store.create(make_form(place="Closed")).id)
    store.record_exit(closed.id)
    store.record_entry(closed.id)
    return store.all()


class FakeCollection:
    def __init__(self, fail=False):
        self.docs = {}
        self.fail = fail

    def find_one(self, query):
        if self.fail:
            raise PyMongoError("connection refused")
        return self.docs.get(query["_id"])

    def replace_one(self, query, doc, upsert=False):
        if self.fail:
            raise PyMongoError("connection refused")
        self.docs[query["_id"]] = doc


class TestBlobFormat:
    def test_round_trip_is_identical(self, mixed_records):
        restored = load_applications(dump_applications(mixed_records))
        assert restored == mixed_records
        assert [r.id for r in restored] == [r.id for r in mixed_records]

    def test_camel_case_fields_and_omitted_optionals(self, mixed_records):
        documents = json.loads(dump_applications(mixed_records))
        pending = next(d for d in documents if d["status"] == "PENDING")
        assert pending["studentName"] == "Arjun Sharma"
        assert "submittedAt" in pending
        assert "gatePassNumber" not in pending
        assert "declineReason" not in pending
        closed = next(d for d in documents if d["place"] == "Closed")
        assert {"gatePassNumber", "outTime", "inTime"} <= set(closed)

    def test_empty_blob(self):
        assert load_applications(None) == []
        assert load_applications("") == []

    def test_corrupt_blob(self):
        with pytest.raises(PersistenceFailure):
            load_applications("{not json")

    def test_blob_breaking_invariants_is_rejected(self, mixed_records):
        documents = json.loads(dump_applications(mixed_records))
        pending = next(d for d in documents if d["status"] == "PENDING")
        pending["gatePassNumber"] = "AB12!@"
        with pytest.raises(PersistenceFailure):
            load_applications(json.dumps(documents))


class TestBackends:
    def test_memory(self, mixed_records):
        storage = MemoryStorage()
        storage.save(mixed_records)
        assert storage.load() == mixed_records

    def test_json_file(self, tmp_path, mixed_records):
        path = tmp_path / "data" / "gatepasses.json"
        storage = JsonFileStorage(str(path), key="rgipt_gatepasses_db")
        assert storage.load() == []
        storage.save(mixed_records)
        assert storage.load() == mixed_records
        assert list(json.loads(path.read_text(encoding="utf-8"))) == ["rgipt_gatepasses_db"]

    def test_json_file_keeps_other_keys(self, tmp_path, mixed_records):
        path = tmp_path / "gatepasses.json"
        path.write_text(json.dumps({"theme": "dark"}), encoding="utf-8")
        JsonFileStorage(str(path)).save(mixed_records)
        assert json.loads(path.read_text(encoding="utf-8"))["theme"] == "dark"

    def test_json_file_unreadable(self, tmp_path):
        path = tmp_path / "gatepasses.json"
        path.write_text("[1, 2", encoding="utf-8")
        with pytest.raises(PersistenceFailure):
            JsonFileStorage(str(path)).load()
        assert not path.exists()
        assert (tmp_path / "gatepasses.json.corrupt").read_text(encoding="utf-8") == "[1, 2"

    def test_save_after_failed_load_keeps_unreadable_copy(self, tmp_path, mixed_records):
        path = tmp_path / "gatepasses.json"
        path.write_text(json.dumps({"rgipt_gatepasses_db": [{"id": "GP-1"}]}), encoding="utf-8")
        storage = JsonFileStorage(str(path))
        with pytest.raises(PersistenceFailure):
            storage.load()
        storage.save(mixed_records)
        assert storage.load() == mixed_records
        aside = json.loads((tmp_path / "gatepasses.json.corrupt").read_text(encoding="utf-8"))
        assert aside["rgipt_gatepasses_db"] == [{"id": "GP-1"}]

    def test_save_over_unreadable_file_sets_it_aside(self, tmp_path, mixed_records):
        path = tmp_path / "gatepasses.json"
        path.write_text("not json", encoding="utf-8")
        JsonFileStorage(str(path)).save(mixed_records)
        assert (tmp_path / "gatepasses.json.corrupt").read_text(encoding="utf-8") == "not json"
        assert JsonFileStorage(str(path)).load() == mixed_records

    def test_mongo(self, mixed_records):
        collection = FakeCollection()
        storage = MongoStorage(collection, key="rgipt_gatepasses_db")
        assert storage.load() == []
        storage.save(mixed_records)
        assert isinstance(collection.docs["rgipt_gatepasses_db"]["value"], str)
        assert storage.load() == mixed_records

    def test_mongo_errors_become_persistence_failures(self, mixed_records):
        storage = MongoStorage(FakeCollection(fail=True))
        with pytest.raises(PersistenceFailure):
            storage.load()
        with pytest.raises(PersistenceFailure):
            storage.save(mixed_records)

    def test_get_storage_defaults_to_file(self, settings, tmp_path):
        settings.DATABASE_URL = None
        settings.STORAGE_PATH = str(tmp_path / "g.json")
        storage = get_storage(settings)
        assert storage.backend == "json-file"
        assert storage.path == settings.STORAGE_PATH


def test_statuses_survive_round_trip(mixed_records):
    restored = load_applications(dump_applications(mixed_records))
    assert {r.status for r in restored} == set(ApplicationStatus)
