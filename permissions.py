"""
Role-gated visibility and action rules.

The screens only offer what ``details_panel`` returns, and the controller
re-checks the same rules with ``require_action`` before touching the store.
"""
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from errors import InvalidTransition, RoleNotPermitted
from schemas import ApplicationStatus, GatePassApplication


class Notice(str, Enum):
    AWAITING_DECISION = "awaiting-decision"
    DECLINE_REASON = "decline-reason"
    SESSION_CLOSED = "session-closed"


class Action(str, Enum):
    DOWNLOAD = "download"
    APPROVE = "approve"
    DECLINE = "decline"
    CONFIRM_DECLINE = "confirm-decline"
    CANCEL_DECLINE = "cancel-decline"
    RECORD_EXIT = "record-exit"
    RECORD_ENTRY = "record-entry"


class DetailsPanel(BaseModel):
    model_config = ConfigDict(frozen=True)

    notice: Optional[Notice] = None
    actions: Tuple[Action, ...] = ()


def visible_applications(role: Optional[str],
                         records: Iterable[GatePassApplication]) -> List[GatePassApplication]:
    """Security only sees approved passes; everyone else sees the full list."""
    if role == "security":
        return [r for r in records if r.status == ApplicationStatus.APPROVED]
    return list(records)


def details_panel(role: Optional[str], record: GatePassApplication,
                  declining: bool = False) -> DetailsPanel:
    status = record.status

    if status == ApplicationStatus.DECLINED:
        return DetailsPanel(notice=Notice.DECLINE_REASON)

    if role == "student":
        if status == ApplicationStatus.PENDING:
            return DetailsPanel(notice=Notice.AWAITING_DECISION)
        return DetailsPanel(actions=(Action.DOWNLOAD,))

    if role == "authority" and status == ApplicationStatus.PENDING:
        if declining:
            return DetailsPanel(actions=(Action.CANCEL_DECLINE, Action.CONFIRM_DECLINE))
        return DetailsPanel(actions=(Action.DECLINE, Action.APPROVE))

    if role == "security" and status == ApplicationStatus.APPROVED:
        if record.out_time is None:
            return DetailsPanel(actions=(Action.RECORD_EXIT,))
        if record.in_time is None:
            return DetailsPanel(actions=(Action.RECORD_ENTRY,))
        return DetailsPanel(notice=Notice.SESSION_CLOSED)

    return DetailsPanel()


def require_action(role: Optional[str], record: GatePassApplication, action: Action,
                   declining: bool = False) -> None:
    if action not in details_panel(role, record, declining).actions:
        raise InvalidTransition(action.value, f"role={role or 'none'}, status={record.status.value}",
                                "not offered for this pass")


def require_role(role: Optional[str], allowed: str, action: str) -> None:
    if role != allowed:
        raise RoleNotPermitted(action, role)
