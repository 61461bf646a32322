"""
Entity schemas for the Student Hub collections.

Records travel as camelCase JSON dicts (fixtures, persisted snapshots, REST
bodies). The models below validate those dicts. The store keeps the dicts
themselves, with known fields coerced to their schema types and unknown fields
left as they came so they survive round trips.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from studenthub.exceptions import ValidationError

T = TypeVar("T")


class Collection(str, Enum):
    """Collections held by the entity store"""
    EVENTS = "events"
    ACTIVITIES = "activities"
    CERTIFICATES = "certificates"
    STUDENTS = "students"
    FACULTY = "faculty"
    REGISTRATIONS = "registrations"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EventStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class AttendanceStatus(str, Enum):
    REGISTERED = "registered"
    ATTENDED = "attended"
    ABSENT = "absent"


class ActivityType(str, Enum):
    """Known activity types. The type field itself is open; other strings pass."""
    CONFERENCE = "conference"
    CERTIFICATION = "certification"
    INTERNSHIP = "internship"
    COMPETITION = "competition"
    VOLUNTEERING = "volunteering"
    LEADERSHIP = "leadership"
    WORKSHOP = "workshop"


class UserRole(str, Enum):
    STUDENT = "student"
    FACULTY = "faculty"
    ADMIN = "admin"


class HubModel(BaseModel):
    """Base schema: camelCase on the wire, unknown fields kept"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        use_enum_values=True,
    )


# ============================================
# People
# ============================================

class Student(HubModel):
    id: str
    name: str
    email: Optional[str] = None
    department: Optional[str] = None
    year: Optional[int] = None
    roll_number: Optional[str] = None
    gpa: Optional[float] = Field(None, ge=0, le=10)
    attendance: Optional[float] = Field(None, ge=0, le=100)
    completed_credits: int = Field(0, ge=0)
    total_credits: int = Field(0, ge=0)
    profile_image: Optional[str] = None

    @model_validator(mode="after")
    def check_credits(self):
        # An explicit totalCredits of 0 is still a bound
        if "total_credits" in self.model_fields_set and self.completed_credits > self.total_credits:
            raise ValueError("completedCredits cannot exceed totalCredits")
        return self


class Faculty(HubModel):
    id: str
    name: str
    email: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    experience: Optional[int] = Field(None, ge=0)
    specialization: List[str] = Field(default_factory=list)


class User(HubModel):
    id: str
    email: str
    password: Optional[str] = None
    name: str
    role: UserRole = UserRole.STUDENT
    is_active: bool = True
    student_id: Optional[str] = None
    faculty_id: Optional[str] = None


# ============================================
# Submissions
# ============================================

class ApprovalFields(HubModel):
    """Audit trail shared by activities and certificates"""
    status: ApprovalStatus = ApprovalStatus.PENDING
    approved_by: Optional[str] = None
    approval_date: Optional[str] = None
    approval_comment: Optional[str] = None
    rejected_by: Optional[str] = None
    rejection_date: Optional[str] = None
    rejection_comment: Optional[str] = None
    version: int = Field(0, ge=0)


class Activity(ApprovalFields):
    id: str
    student_id: str
    title: str
    type: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    credits: int = Field(0, ge=0)
    skills: List[str] = Field(default_factory=list)
    evidence: List[Any] = Field(default_factory=list)
    submission_date: Optional[str] = None


class Certificate(ApprovalFields):
    id: str
    student_id: str
    title: str
    issuer: Optional[str] = None
    issue_date: Optional[str] = None
    upload_date: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[Any] = None
    file_url: Optional[str] = None
    verification_code: Optional[str] = None


# ============================================
# Events
# ============================================

class Organizer(HubModel):
    name: str = ""
    type: Optional[str] = None
    verification_status: Optional[str] = None
    contact_email: Optional[str] = None
    faculty_id: Optional[str] = None


class Venue(HubModel):
    name: Optional[str] = None
    address: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=0)


class EventDates(HubModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    registration_deadline: Optional[str] = None


class Fees(HubModel):
    student: float = Field(0, ge=0)
    professional: float = Field(0, ge=0)
    currency: str = "INR"


class Event(HubModel):
    id: str
    title: str
    description: Optional[str] = ""
    type: Optional[str] = None
    category: Optional[str] = None
    organizer: Organizer = Field(default_factory=Organizer)
    venue: Venue = Field(default_factory=Venue)
    dates: EventDates = Field(default_factory=EventDates)
    fees: Fees = Field(default_factory=Fees)
    tags: List[str] = Field(default_factory=list)
    max_participants: Optional[int] = Field(None, ge=0)
    registration_count: int = Field(0, ge=0)
    status: EventStatus = EventStatus.OPEN
    created_by: Optional[str] = None
    created_date: Optional[str] = None
    version: int = Field(0, ge=0)


class Registration(HubModel):
    id: str
    event_id: str
    student_id: str
    registration_date: Optional[str] = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    attendance_status: AttendanceStatus = AttendanceStatus.REGISTERED
    amount: float = Field(0, ge=0)
    version: int = Field(0, ge=0)


MODELS: Dict[Collection, Type[HubModel]] = {
    Collection.EVENTS: Event,
    Collection.ACTIVITIES: Activity,
    Collection.CERTIFICATES: Certificate,
    Collection.STUDENTS: Student,
    Collection.FACULTY: Faculty,
    Collection.REGISTRATIONS: Registration,
}


def validate_record(collection: Collection, record: Dict[str, Any]) -> HubModel:
    """Validate a wire-format record, raising the package ValidationError"""
    model = MODELS[Collection(collection)]
    try:
        return model.model_validate(record)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(
            f"Invalid {model.__name__.lower()}: {first.get('msg', str(e))}",
            field=field
        ) from e


def _overlay(raw: Dict[str, Any], coerced: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(raw)
    for key, value in coerced.items():
        if isinstance(value, dict) and isinstance(raw.get(key), dict):
            merged[key] = _overlay(raw[key], value)
        else:
            merged[key] = value
    return merged


def normalize_record(collection: Collection, record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a record and return it with known values coerced to their schema
    types ("50" becomes 50). Unknown keys, nested ones included, are kept.
    """
    model = validate_record(collection, record)
    return _overlay(record, model.model_dump(by_alias=True, exclude_unset=True))


@dataclass
class ReadResult(Generic[T]):
    """
    Outcome of a read that must never crash the caller.

    `value` always holds something usable (the fetched data or an empty
    default). `error` is set when the default stands in for a failed fetch.
    """
    value: T
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, raising the stored error if the read failed"""
        if self.error is not None:
            raise self.error
        return self.value
