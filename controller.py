"""
Session/View Controller.

Holds the current SessionState and is the single caller into the store and
the leaf collaborators (suggestions, certificate renderer). Each public
method is one user action: guard, mutate through the store if needed, then
feed the outcome to ``transition``. Sync routes run on a worker threadpool,
so each action holds the controller lock from guard to dispatch.
"""
import asyncio
import logging
import threading
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from certificate import certificate_filename, render_certificate
from config import Settings
from errors import InvalidTransition, NotFound, ProviderUnavailable, ValidationError
from gatepass_store import GatePassStore, format_movement_time, now_local
from permissions import (
    Action,
    Notice,
    details_panel,
    require_action,
    require_role,
    visible_applications,
)
from schemas import (
    ApplicationStatus,
    ApplyFormInput,
    ApplyPassRequest,
    GatePassApplication,
    Location,
    UserRole,
)
from session_state import (
    MIN_QUERY_LENGTH,
    ApplicationSubmitted,
    ApplyOpened,
    AuthModeToggled,
    BackToDashboard,
    DecisionRecorded,
    DeclineCancelled,
    DeclineReasonTyped,
    DeclineStarted,
    DetailsOpened,
    Event,
    LoggedIn,
    MovementRecorded,
    PasswordTyped,
    PhoneTyped,
    QueryTyped,
    Reset,
    RoleSelected,
    SearchFailed,
    SearchStarted,
    SessionState,
    SplashElapsed,
    SuggestionPicked,
    SuggestionsReceived,
    transition,
)
from suggestions import QUOTA_MESSAGE, UNAVAILABLE_MESSAGE, PlaceSuggestionClient, resolve_location

logger = logging.getLogger(__name__)

DASHBOARD_TITLES = {
    "student": "My Recent Passes",
    "authority": "Student Leave Review",
    "security": "Gate Clearance Log",
}

NOTICE_TEXT = {
    Notice.AWAITING_DECISION: "Your application has been submitted, authority will take action soon.",
    Notice.DECLINE_REASON: "Application Declined",
    Notice.SESSION_CLOSED: "Gate Movement Session Closed. Both Exit and Entry timestamps verified.",
}


def _validate_form(data: dict) -> ApplyPassRequest:
    try:
        return ApplyPassRequest.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise ValidationError(f"{field}: {first['msg']}", field=field) from e


class SessionController:
    def __init__(
        self,
        store: GatePassStore,
        suggestions: PlaceSuggestionClient,
        settings: Settings,
        renderer: Callable[[GatePassApplication], bytes] = render_certificate,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.suggestions = suggestions
        self.settings = settings
        self.renderer = renderer
        self._clock = clock or now_local
        self.state = SessionState()
        self._lock = threading.RLock()
        self.started_at = self._clock()
        self.current_time = self.started_at

    @property
    def fallback_location(self) -> Location:
        return Location(latitude=self.settings.FALLBACK_LATITUDE, longitude=self.settings.FALLBACK_LONGITUDE)

    def _dispatch(self, event: Event) -> SessionState:
        with self._lock:
            previous = self.state.screen
            self.state = transition(self.state, event)
            if self.state.screen != previous:
                logger.debug("%s: %s -> %s", type(event).__name__, previous, self.state.screen)
            return self.state

    # -----------------------------
    # Timers
    # -----------------------------

    def tick(self, now: Optional[datetime] = None) -> None:
        """Refresh the clock and end the splash once its delay has passed."""
        with self._lock:
            self.current_time = now or self._clock()
            elapsed = (self.current_time - self.started_at).total_seconds()
            if self.state.screen == "splash" and elapsed >= self.settings.SPLASH_SECONDS:
                self._dispatch(SplashElapsed())

    def finish_splash(self) -> None:
        with self._lock:
            if self.state.screen == "splash":
                self._dispatch(SplashElapsed())

    # -----------------------------
    # Role select / login
    # -----------------------------

    def select_role(self, role: UserRole) -> SessionState:
        return self._dispatch(RoleSelected(role=role))

    def toggle_auth_mode(self) -> SessionState:
        return self._dispatch(AuthModeToggled())

    def type_phone(self, raw: str) -> SessionState:
        return self._dispatch(PhoneTyped(raw=raw))

    def type_password(self, raw: str) -> SessionState:
        return self._dispatch(PasswordTyped(raw=raw))

    def login(self, phone: Optional[str] = None, password: Optional[str] = None) -> SessionState:
        with self._lock:
            if phone is not None:
                self.type_phone(phone)
            if password is not None:
                self.type_password(password)
            state = self._dispatch(LoggedIn())
        logger.info("Signed in as %s", state.role)
        return state

    def reset(self) -> SessionState:
        return self._dispatch(Reset())

    # -----------------------------
    # Navigation
    # -----------------------------

    def listing(self):
        return visible_applications(self.state.role, self.store.all())

    def selected_record(self) -> Optional[GatePassApplication]:
        if self.state.selected_id is None:
            return None
        try:
            return self.store.get(self.state.selected_id)
        except NotFound:
            return None

    def _require_selected(self, action: str) -> GatePassApplication:
        if self.state.screen != "details":
            raise InvalidTransition(action, f"screen={self.state.screen}")
        record = self.selected_record()
        if record is None:
            raise NotFound("GatePassApplication", self.state.selected_id or "")
        return record

    def open_details(self, app_id: str) -> SessionState:
        with self._lock:
            record = self.store.get(app_id)
            if record not in self.listing():
                raise InvalidTransition("open details", f"role={self.state.role}, status={record.status.value}",
                                        "not listed for this role")
            return self._dispatch(DetailsOpened(application_id=app_id))

    def back(self) -> SessionState:
        return self._dispatch(BackToDashboard())

    # -----------------------------
    # Student
    # -----------------------------

    async def open_apply(self, locate: Optional[Callable[[], Awaitable[Location]]] = None) -> SessionState:
        require_role(self.state.role, "student", "apply")
        if self.state.screen != "dashboard":
            raise InvalidTransition("apply", f"screen={self.state.screen}")
        location = await resolve_location(locate, self.settings.GEOLOCATION_TIMEOUT, self.fallback_location)
        return self._dispatch(ApplyOpened(location=location))

    async def type_destination(self, text: str) -> SessionState:
        """Debounced lookup; a newer keystroke or pick supersedes this one."""
        state = self._dispatch(QueryTyped(text=text))
        seq = state.search_seq
        if len(text.strip()) < MIN_QUERY_LENGTH or state.quota_exceeded:
            return state

        await asyncio.sleep(self.settings.SEARCH_DEBOUNCE_SECONDS)
        if seq != self.state.search_seq or self.state.screen != "apply":
            return self.state

        self._dispatch(SearchStarted(seq=seq))
        try:
            found = await self.suggestions.suggest(text, self.state.location or self.fallback_location)
        except ProviderUnavailable as e:
            message = QUOTA_MESSAGE if e.quota_exceeded else UNAVAILABLE_MESSAGE
            return self._dispatch(SearchFailed(seq=seq, message=message, quota_exceeded=e.quota_exceeded))
        return self._dispatch(SuggestionsReceived(seq=seq, suggestions=tuple(found)))

    def pick_suggestion(self, title: str) -> SessionState:
        return self._dispatch(SuggestionPicked(title=title))

    def form_defaults(self) -> Dict[str, str]:
        user = self.state.user
        return {
            "student_name": user.name if user else "",
            "program": "B.Tech",
            "year": "1",
            "place": self.state.place_query,
            "contact_number": self.state.phone_input,
        }

    def submit_application(self, form: ApplyFormInput) -> GatePassApplication:
        with self._lock:
            require_role(self.state.role, "student", "submit application")
            if self.state.screen != "apply":
                raise InvalidTransition("submit application", f"screen={self.state.screen}")
            data = self.form_defaults()
            data.update(form.model_dump(exclude_none=True))
            record = self.store.create(_validate_form(data))
            self._dispatch(ApplicationSubmitted())
            return record

    def download_certificate(self) -> Tuple[str, bytes]:
        with self._lock:
            record = self._require_selected("download")
            require_action(self.state.role, record, Action.DOWNLOAD)
            return certificate_filename(record), self.renderer(record)

    # -----------------------------
    # Authority
    # -----------------------------

    def approve(self) -> GatePassApplication:
        with self._lock:
            record = self._require_selected("approve")
            require_role(self.state.role, "authority", "approve")
            require_action(self.state.role, record, Action.APPROVE, self.state.declining)
            updated = self.store.approve(record.id)
            self._dispatch(DecisionRecorded(application_id=record.id))
            return updated

    def start_decline(self) -> SessionState:
        with self._lock:
            record = self._require_selected("decline")
            require_role(self.state.role, "authority", "decline")
            require_action(self.state.role, record, Action.DECLINE, self.state.declining)
            return self._dispatch(DeclineStarted())

    def type_decline_reason(self, text: str) -> SessionState:
        return self._dispatch(DeclineReasonTyped(text=text))

    def cancel_decline(self) -> SessionState:
        return self._dispatch(DeclineCancelled())

    def confirm_decline(self, reason: Optional[str] = None) -> GatePassApplication:
        with self._lock:
            record = self._require_selected("confirm decline")
            require_role(self.state.role, "authority", "confirm decline")
            require_action(self.state.role, record, Action.CONFIRM_DECLINE, self.state.declining)
            if reason is not None:
                self.type_decline_reason(reason)
            updated = self.store.decline(record.id, self.state.decline_draft)
            self._dispatch(DecisionRecorded(application_id=record.id))
            return updated

    # -----------------------------
    # Security
    # -----------------------------

    def record_exit(self) -> GatePassApplication:
        with self._lock:
            record = self._require_selected("record exit")
            require_role(self.state.role, "security", "record exit")
            require_action(self.state.role, record, Action.RECORD_EXIT)
            updated = self.store.record_exit(record.id)
            self._dispatch(MovementRecorded(application_id=record.id))
            return updated

    def record_entry(self) -> GatePassApplication:
        with self._lock:
            record = self._require_selected("record entry")
            require_role(self.state.role, "security", "record entry")
            require_action(self.state.role, record, Action.RECORD_ENTRY)
            updated = self.store.record_entry(record.id)
            self._dispatch(MovementRecorded(application_id=record.id))
            return updated

    # -----------------------------
    # Rendering
    # -----------------------------

    def view(self) -> dict:
        with self._lock:
            state = self.state
            screen = state.screen
            record = self.selected_record() if screen == "details" else None
            if screen == "details" and record is None:
                screen = "loading"

            out = {
                "screen": screen,
                "role": state.role,
                "user": state.user.model_dump() if state.user else None,
                "clock": format_movement_time(self.current_time),
                "persistence_error": self.store.last_persistence_error,
            }

            if screen in ("login", "signup"):
                out["phone"] = state.phone_input
                out["can_submit"] = len(state.phone_input) == 10

            elif screen == "dashboard":
                out["title"] = DASHBOARD_TITLES.get(state.role, "")
                out["can_apply"] = state.role == "student"
                out["applications"] = [
                    r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in self.listing()
                ]

            elif screen == "apply":
                out["form"] = self.form_defaults()
                out["destination"] = {
                    "query": state.place_query,
                    "suggestions": [s.model_dump() for s in state.suggestions],
                    "is_searching": state.is_searching,
                    "error": state.search_error,
                    "manual_entry_only": state.quota_exceeded,
                }

            elif screen == "details":
                panel = details_panel(state.role, record, state.declining)
                out["application"] = record.model_dump(mode="json", by_alias=True, exclude_none=True)
                out["notice"] = NOTICE_TEXT.get(panel.notice) if panel.notice else None
                out["actions"] = [a.value for a in panel.actions]
                if state.role == "student" and record.status == ApplicationStatus.APPROVED:
                    out["message"] = "Your application has been approved by authority."
                if state.declining:
                    out["decline_draft"] = state.decline_draft
                    out["can_confirm_decline"] = bool(state.decline_draft.strip())

            return out
