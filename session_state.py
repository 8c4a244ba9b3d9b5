"""
Session/view state machine.

``SessionState`` is an immutable value and ``transition(state, event)`` is a
pure function returning the next state. Store mutations happen in the
controller; their outcome is fed back in as an event (ApplicationSubmitted,
DecisionRecorded, MovementRecorded).

Screens:

    splash -> role-select -> login <-> signup -> dashboard -> apply | details

Every screen except splash accepts Reset, which returns to role-select.
"""
from typing import Callable, Dict, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict

from errors import InvalidTransition, RoleNotPermitted, ValidationError
from schemas import PHONE_DIGITS, Location, PlaceSuggestion, User, UserRole, clean_phone

Screen = Literal["splash", "role-select", "login", "signup", "dashboard", "apply", "details"]

MIN_QUERY_LENGTH = 2
MAX_SUGGESTIONS = 5

DISPLAY_NAMES = {
    "student": "Arjun Sharma",
    "authority": "Dean Admin",
    "security": "Gate Post",
}


class SessionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    screen: Screen = "splash"
    role: Optional[UserRole] = None
    user: Optional[User] = None
    selected_id: Optional[str] = None

    # authority decline sub-state
    declining: bool = False
    decline_draft: str = ""

    # login / apply form
    phone_input: str = ""
    password_input: str = ""

    # destination search
    place_query: str = ""
    suggestions: Tuple[PlaceSuggestion, ...] = ()
    search_seq: int = 0
    is_searching: bool = False
    search_error: Optional[str] = None
    quota_exceeded: bool = False
    location: Optional[Location] = None


# -----------------------------
# Events
# -----------------------------

class Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class SplashElapsed(Event):
    pass


class RoleSelected(Event):
    role: UserRole


class AuthModeToggled(Event):
    pass


class PhoneTyped(Event):
    raw: str


class PasswordTyped(Event):
    raw: str


class LoggedIn(Event):
    pass


class Reset(Event):
    pass


class ApplyOpened(Event):
    location: Location


class ApplicationSubmitted(Event):
    pass


class DetailsOpened(Event):
    application_id: str


class BackToDashboard(Event):
    pass


class DeclineStarted(Event):
    pass


class DeclineReasonTyped(Event):
    text: str


class DeclineCancelled(Event):
    pass


class DecisionRecorded(Event):
    application_id: str


class MovementRecorded(Event):
    application_id: str


class QueryTyped(Event):
    text: str


class SearchStarted(Event):
    seq: int


class SuggestionsReceived(Event):
    seq: int
    suggestions: Tuple[PlaceSuggestion, ...]


class SearchFailed(Event):
    seq: int
    message: str
    quota_exceeded: bool = False


class SuggestionPicked(Event):
    title: str


# -----------------------------
# Guards
# -----------------------------

def _expect_screen(state: SessionState, event: Event, *screens: str) -> None:
    if state.screen not in screens:
        raise InvalidTransition(type(event).__name__, f"screen={state.screen}")


def _expect_role(state: SessionState, event: Event, role: str) -> None:
    if state.role != role:
        raise RoleNotPermitted(type(event).__name__, state.role)


def _expect_selected(state: SessionState, event: Event) -> None:
    if event.application_id != state.selected_id:
        raise InvalidTransition(type(event).__name__, f"selected={state.selected_id}",
                                f"outcome is for {event.application_id}")


# -----------------------------
# Handlers
# -----------------------------

def _splash_elapsed(state, event):
    _expect_screen(state, event, "splash")
    return state.model_copy(update={"screen": "role-select"})


def _role_selected(state, event):
    _expect_screen(state, event, "role-select")
    return state.model_copy(update={"screen": "login", "role": event.role})


def _auth_mode_toggled(state, event):
    _expect_screen(state, event, "login", "signup")
    return state.model_copy(update={"screen": "signup" if state.screen == "login" else "login"})


def _phone_typed(state, event):
    _expect_screen(state, event, "login", "signup", "apply")
    return state.model_copy(update={"phone_input": clean_phone(event.raw)})


def _password_typed(state, event):
    _expect_screen(state, event, "login", "signup")
    return state.model_copy(update={"password_input": event.raw})


def _logged_in(state, event):
    _expect_screen(state, event, "login", "signup")
    if state.role is None:
        raise InvalidTransition("LoggedIn", "role=none", "select a role first")
    if len(state.phone_input) != PHONE_DIGITS:
        raise ValidationError(f"Mobile number must be exactly {PHONE_DIGITS} digits", field="phone")
    # No credential store: any password is accepted
    user = User(id="1", role=state.role, identifier=state.phone_input, name=DISPLAY_NAMES[state.role])
    return state.model_copy(update={"screen": "dashboard", "user": user})


def _reset(state, event):
    if state.screen == "splash":
        raise InvalidTransition("Reset", "screen=splash")
    return SessionState(screen="role-select")


def _apply_opened(state, event):
    _expect_screen(state, event, "dashboard")
    _expect_role(state, event, "student")
    return state.model_copy(update={"screen": "apply", "location": event.location})


def _application_submitted(state, event):
    _expect_screen(state, event, "apply")
    _expect_role(state, event, "student")
    return state.model_copy(update={
        "screen": "dashboard",
        "place_query": "",
        "suggestions": (),
        "search_seq": state.search_seq + 1,
        "is_searching": False,
    })


def _details_opened(state, event):
    _expect_screen(state, event, "dashboard")
    return state.model_copy(update={"screen": "details", "selected_id": event.application_id})


def _back_to_dashboard(state, event):
    _expect_screen(state, event, "apply", "details")
    return state.model_copy(update={
        "screen": "dashboard",
        "selected_id": None,
        "declining": False,
        "decline_draft": "",
    })


def _decline_started(state, event):
    _expect_screen(state, event, "details")
    _expect_role(state, event, "authority")
    return state.model_copy(update={"declining": True})


def _decline_reason_typed(state, event):
    _expect_screen(state, event, "details")
    if not state.declining:
        raise InvalidTransition("DeclineReasonTyped", "declining=False")
    return state.model_copy(update={"decline_draft": event.text})


def _decline_cancelled(state, event):
    _expect_screen(state, event, "details")
    if not state.declining:
        raise InvalidTransition("DeclineCancelled", "declining=False")
    return state.model_copy(update={"declining": False, "decline_draft": ""})


def _decision_recorded(state, event):
    _expect_screen(state, event, "details")
    _expect_role(state, event, "authority")
    _expect_selected(state, event)
    return state.model_copy(update={
        "screen": "dashboard",
        "selected_id": None,
        "declining": False,
        "decline_draft": "",
    })


def _movement_recorded(state, event):
    _expect_screen(state, event, "details")
    _expect_role(state, event, "security")
    _expect_selected(state, event)
    return state


def _query_typed(state, event):
    _expect_screen(state, event, "apply")
    update = {"place_query": event.text, "search_seq": state.search_seq + 1}
    if len(event.text.strip()) < MIN_QUERY_LENGTH:
        update.update({"suggestions": (), "is_searching": False})
    return state.model_copy(update=update)


def _search_started(state, event):
    if state.screen != "apply" or event.seq != state.search_seq or state.quota_exceeded:
        return state
    return state.model_copy(update={"is_searching": True, "search_error": None})


def _suggestions_received(state, event):
    if state.screen != "apply" or event.seq != state.search_seq:
        # stale lookup
        return state
    return state.model_copy(update={
        "suggestions": tuple(event.suggestions[:MAX_SUGGESTIONS]),
        "is_searching": False,
    })


def _search_failed(state, event):
    if state.screen != "apply":
        return state
    if event.quota_exceeded:
        return state.model_copy(update={
            "quota_exceeded": True,
            "search_error": event.message,
            "suggestions": (),
            "is_searching": False,
        })
    if event.seq != state.search_seq:
        return state
    return state.model_copy(update={"search_error": event.message, "is_searching": False})


def _suggestion_picked(state, event):
    _expect_screen(state, event, "apply")
    return state.model_copy(update={
        "place_query": event.title,
        "suggestions": (),
        "search_seq": state.search_seq + 1,
        "is_searching": False,
    })


_HANDLERS: Dict[Type[Event], Callable[[SessionState, Event], SessionState]] = {
    SplashElapsed: _splash_elapsed,
    RoleSelected: _role_selected,
    AuthModeToggled: _auth_mode_toggled,
    PhoneTyped: _phone_typed,
    PasswordTyped: _password_typed,
    LoggedIn: _logged_in,
    Reset: _reset,
    ApplyOpened: _apply_opened,
    ApplicationSubmitted: _application_submitted,
    DetailsOpened: _details_opened,
    BackToDashboard: _back_to_dashboard,
    DeclineStarted: _decline_started,
    DeclineReasonTyped: _decline_reason_typed,
    DeclineCancelled: _decline_cancelled,
    DecisionRecorded: _decision_recorded,
    MovementRecorded: _movement_recorded,
    QueryTyped: _query_typed,
    SearchStarted: _search_started,
    SuggestionsReceived: _suggestions_received,
    SearchFailed: _search_failed,
    SuggestionPicked: _suggestion_picked,
}


def transition(state: SessionState, event: Event) -> SessionState:
    """Return the state after ``event``; raises InvalidTransition if it is not allowed."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise InvalidTransition(type(event).__name__, f"screen={state.screen}", "unknown event")
    return handler(state, event)
