"""
Gate Pass Store

In-memory, newest-first list of gate pass applications and the only writer
to the persistence adapter. Each mutator enforces the record lifecycle:

    PENDING --approve--> APPROVED --record_exit--> (outTime) --record_entry--> (inTime)
    PENDING --decline--> DECLINED

Violations raise InvalidTransition and leave the record untouched. Guard,
write and save run under one lock, so concurrent callers see each
transition exactly once.
"""
import logging
import random
import string
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from errors import InvalidTransition, NotFound, PersistenceFailure, ValidationError
from schemas import ApplicationStatus, ApplyPassRequest, GatePassApplication

logger = logging.getLogger(__name__)

GATE_PASS_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + "!@#$%^&*"
GATE_PASS_LENGTH = 6

MOVEMENT_TIME_FORMAT = "%d %b %Y, %I:%M:%S %p"


def now_local() -> datetime:
    return datetime.now().astimezone()


def format_movement_time(dt: datetime) -> str:
    """e.g. ``8 Oct 2026, 03:04:05 pm``"""
    return f"{dt.day} {dt:%b} {dt.year}, {dt:%I:%M:%S} {dt.strftime('%p').lower()}"


def parse_movement_time(text: str) -> datetime:
    return datetime.strptime(text, MOVEMENT_TIME_FORMAT)


def generate_gate_pass_number(rng: random.Random) -> str:
    return "".join(rng.choice(GATE_PASS_ALPHABET) for _ in range(GATE_PASS_LENGTH))


class GatePassStore:
    def __init__(self, storage, rng: Optional[random.Random] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self._storage = storage
        self._rng = rng or random.Random()
        self._clock = clock or now_local
        self._records: List[GatePassApplication] = []
        self._lock = threading.RLock()
        self.last_persistence_error: Optional[str] = None

    # -----------------------------
    # Reads
    # -----------------------------

    @property
    def backend(self) -> str:
        return getattr(self._storage, "backend", "unknown")

    def load(self) -> int:
        """Replace the in-memory list with the persisted one."""
        with self._lock:
            self._records = list(self._storage.load())
            logger.info("Loaded %d application(s) from %s", len(self._records), self.backend)
            return len(self._records)

    def all(self) -> List[GatePassApplication]:
        with self._lock:
            return list(self._records)

    def get(self, app_id: str) -> GatePassApplication:
        return self._records[self._index(app_id)]

    def _index(self, app_id: str) -> int:
        for i, record in enumerate(self._records):
            if record.id == app_id:
                return i
        raise NotFound("GatePassApplication", app_id)

    # -----------------------------
    # Mutators
    # -----------------------------

    def create(self, form: ApplyPassRequest) -> GatePassApplication:
        with self._lock:
            now = self._clock()
            record = GatePassApplication(
                id=self._new_id(now),
                status=ApplicationStatus.PENDING,
                submitted_at=now.isoformat(),
                **form.model_dump(),
            )
            self._records.insert(0, record)
            logger.info("Application %s submitted for %s", record.id, record.place)
            self._persist()
            return record

    def approve(self, app_id: str) -> GatePassApplication:
        with self._lock:
            index, record = self._require(app_id, "approve", ApplicationStatus.PENDING)
            updated = self._replace(index, record, status=ApplicationStatus.APPROVED,
                                    gate_pass_number=self._new_gate_pass_number())
            logger.info("Application %s approved with gate pass %s", app_id, updated.gate_pass_number)
            self._persist()
            return updated

    def decline(self, app_id: str, reason: Optional[str]) -> GatePassApplication:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is mandatory to decline an application.", field="reason")
        with self._lock:
            index, record = self._require(app_id, "decline", ApplicationStatus.PENDING)
            updated = self._replace(index, record, status=ApplicationStatus.DECLINED, decline_reason=reason)
            logger.info("Application %s declined", app_id)
            self._persist()
            return updated

    def record_exit(self, app_id: str) -> GatePassApplication:
        with self._lock:
            index, record = self._require(app_id, "record exit", ApplicationStatus.APPROVED)
            if record.out_time is not None:
                raise InvalidTransition("record exit", f"outTime={record.out_time}", "exit already recorded")
            updated = self._replace(index, record, out_time=format_movement_time(self._clock()))
            logger.info("Exit recorded for %s at %s", app_id, updated.out_time)
            self._persist()
            return updated

    def record_entry(self, app_id: str) -> GatePassApplication:
        with self._lock:
            index, record = self._require(app_id, "record entry", ApplicationStatus.APPROVED)
            if record.out_time is None:
                raise InvalidTransition("record entry", "outTime=None", "exit must be recorded first")
            if record.in_time is not None:
                raise InvalidTransition("record entry", f"inTime={record.in_time}", "entry already recorded")
            in_time = format_movement_time(self._clock())
            # Timestamps have one-second resolution; entry must land in a later second
            if parse_movement_time(in_time) <= parse_movement_time(record.out_time):
                raise InvalidTransition("record entry", f"outTime={record.out_time}",
                                        "entry must be later than exit, try again")
            updated = self._replace(index, record, in_time=in_time)
            logger.info("Entry recorded for %s at %s", app_id, updated.in_time)
            self._persist()
            return updated

    # -----------------------------
    # Helpers
    # -----------------------------

    def _require(self, app_id: str, action: str,
                 status: ApplicationStatus) -> Tuple[int, GatePassApplication]:
        index = self._index(app_id)
        record = self._records[index]
        if record.status != status:
            raise InvalidTransition(action, f"status={record.status.value}",
                                    f"requires {status.value}")
        return index, record

    def _replace(self, index: int, record: GatePassApplication, **changes) -> GatePassApplication:
        # Re-validate so the status/field invariants are checked on every write
        updated = GatePassApplication.model_validate({**record.model_dump(), **changes})
        self._records[index] = updated
        return updated

    def _new_id(self, now: datetime) -> str:
        taken = {r.id for r in self._records}
        millis = int(now.timestamp() * 1000)
        while f"GP-{millis}" in taken:
            millis += 1
        return f"GP-{millis}"

    def _new_gate_pass_number(self) -> str:
        """Draw until the token is not already on another record; tokens are unique store-wide."""
        taken = {r.gate_pass_number for r in self._records if r.gate_pass_number}
        token = generate_gate_pass_number(self._rng)
        while token in taken:
            token = generate_gate_pass_number(self._rng)
        return token

    def _persist(self) -> bool:
        try:
            self._storage.save(self._records)
        except PersistenceFailure as e:
            self.last_persistence_error = str(e)
            logger.exception("Failed to persist %d application(s)", len(self._records))
            return False
        self.last_persistence_error = None
        return True

    def stats(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in ApplicationStatus}
        for record in self._records:
            counts[record.status.value] += 1
        return counts
