"""
Shared pytest fixtures for the gate pass portal.

Provides:
    - clock: deterministic clock advancing one second per reading
    - storage / store: in-memory persistence and a seeded GatePassStore
    - suggestions: scripted stand-in for the Gemini place lookup
    - controller: SessionController past the splash screen
    - client: FastAPI TestClient bound to the controller
"""
import os
import random
import tempfile
import time
from datetime import datetime, timedelta, timezone

import pytest

# Keep the module-level app in main.py away from real storage
os.environ["STORAGE_PATH"] = os.path.join(tempfile.gettempdir(), "gatepass-test-import.json")
os.environ.pop("DATABASE_URL", None)

from fastapi.testclient import TestClient

from config import Settings
from controller import SessionController
from database import MemoryStorage
from errors import ProviderUnavailable
from gatepass_store import GatePassStore
from main import create_app
from schemas import ApplyPassRequest, PlaceSuggestion

IST = timezone(timedelta(hours=5, minutes=30))


class StepClock:
    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.now = start or datetime(2026, 10, 18, 9, 0, 0, tzinfo=IST)
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current


class SlowRandom(random.Random):
    """Sleeps on every draw so concurrent callers overlap inside the store."""

    def choice(self, seq):
        time.sleep(0.001)
        return super().choice(seq)


class ScriptedSuggestions:
    """Answers lookups from a dict; a query listed in ``gates`` waits for its event."""

    def __init__(self, results=None, error=None):
        self.results = results or {}
        self.error = error
        self.gates = {}
        self.calls = []

    async def suggest(self, query, location):
        self.calls.append((query, location))
        if query in self.gates:
            await self.gates[query].wait()
        if self.error is not None:
            raise self.error
        return [PlaceSuggestion(title=t) for t in self.results.get(query, [])]


def make_form(**overrides):
    data = {
        "student_name": "Arjun Sharma",
        "roll_number": "21CS1042",
        "program": "B.Tech",
        "year": "3",
        "place": "City Center",
        "purpose": "Family visit",
        "departure_date": "2026-10-20",
        "departure_time": "09:00",
        "arrival_date": "2026-10-21",
        "arrival_time": "18:00",
        "contact_number": "9876543210",
    }
    data.update(overrides)
    return ApplyPassRequest(**data)


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage, clock):
    return GatePassStore(storage, rng=random.Random(42), clock=clock)


@pytest.fixture
def settings():
    s = Settings()
    s.SPLASH_SECONDS = 0
    s.SEARCH_DEBOUNCE_SECONDS = 0
    s.GEOLOCATION_TIMEOUT = 0.05
    return s


@pytest.fixture
def suggestions():
    return ScriptedSuggestions(results={
        "City": ["City Center", "City Mall", "City Hospital"],
        "Lucknow": ["Lucknow Junction", "Hazratganj"],
    })


@pytest.fixture
def controller(store, suggestions, settings, clock):
    c = SessionController(store, suggestions, settings, clock=clock)
    c.tick()
    return c


@pytest.fixture
def client(settings, controller):
    app = create_app(settings, controller)
    return TestClient(app)


def login_as(controller, role, phone="9876543210"):
    if controller.state.screen != "role-select":
        controller.reset()
    controller.select_role(role)
    controller.login(phone=phone, password="anything")


@pytest.fixture
def quota_error():
    return ProviderUnavailable("429 RESOURCE_EXHAUSTED", quota_exceeded=True)
