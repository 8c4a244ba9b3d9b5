"""
Schemas for the Campus Gate Pass Portal

GatePassApplication is the persisted record. Its camelCase aliases are the
field names used in the stored blob. The *Request models are the payloads
accepted by the screen endpoints.
"""
import re
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

UserRole = Literal["student", "authority", "security"]
Program = Literal["B.Tech", "MBA", "Phd"]
Year = Literal["1", "2", "3", "4"]

PHONE_DIGITS = 10


class ApplicationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


def clean_phone(raw: str) -> str:
    """Keep digits only, truncated to the phone length, as the field is typed."""
    return re.sub(r"\D", "", raw or "")[:PHONE_DIGITS]


class GatePassApplication(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    id: str = Field(..., description="GP-<epoch ms>, immutable")
    student_name: str
    roll_number: str
    program: Program
    year: Year
    place: str = Field(..., description="Destination")
    purpose: str
    departure_date: str
    departure_time: str
    arrival_date: str
    arrival_time: str
    contact_number: str
    status: ApplicationStatus = ApplicationStatus.PENDING
    gate_pass_number: Optional[str] = None
    out_time: Optional[str] = None
    in_time: Optional[str] = None
    submitted_at: str
    decline_reason: Optional[str] = None

    @model_validator(mode="after")
    def _status_fields_agree(self):
        approved = self.status == ApplicationStatus.APPROVED
        declined = self.status == ApplicationStatus.DECLINED
        if (self.gate_pass_number is not None) != approved:
            raise ValueError("gatePassNumber is present exactly when status is APPROVED")
        if (self.decline_reason is not None) != declined:
            raise ValueError("declineReason is present exactly when status is DECLINED")
        if self.in_time is not None and self.out_time is None:
            raise ValueError("inTime requires outTime")
        if self.out_time is not None and not approved:
            raise ValueError("movement timestamps require an APPROVED pass")
        return self


class User(BaseModel):
    id: str
    role: UserRole
    identifier: str = Field(..., description="10-digit phone number")
    name: str


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class PlaceSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    uri: str = ""


# -----------------------------
# Request payloads
# -----------------------------

class ApplyPassRequest(BaseModel):
    """The apply form. Every field is required and must not be blank."""

    student_name: str
    roll_number: str
    program: Program = "B.Tech"
    year: Year = "1"
    place: str
    purpose: str
    departure_date: str
    departure_time: str
    arrival_date: str
    arrival_time: str
    contact_number: str

    @field_validator(
        "student_name", "roll_number", "place", "purpose",
        "departure_date", "departure_time", "arrival_date", "arrival_time",
    )
    @classmethod
    def _not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("contact_number")
    @classmethod
    def _ten_digits(cls, value: str) -> str:
        digits = clean_phone(value)
        if len(digits) != PHONE_DIGITS:
            raise ValueError(f"must be exactly {PHONE_DIGITS} digits")
        return digits


class ApplyFormInput(BaseModel):
    """Apply form as posted; blanks fall back to the session's prefilled values."""

    student_name: Optional[str] = None
    roll_number: Optional[str] = None
    program: Optional[Program] = None
    year: Optional[Year] = None
    place: Optional[str] = None
    purpose: Optional[str] = None
    departure_date: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_date: Optional[str] = None
    arrival_time: Optional[str] = None
    contact_number: Optional[str] = None


class RoleSelectRequest(BaseModel):
    role: UserRole


class TextInputRequest(BaseModel):
    value: str = ""


class LoginRequest(BaseModel):
    phone: Optional[str] = None
    password: Optional[str] = None


class OpenApplyRequest(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class DeclineRequest(BaseModel):
    reason: Optional[str] = None
