"""
Domain models for coach assignment.

These models describe where a client stands with respect to their coach and
diet plan. They know nothing about Snowflake, FastAPI, or how the rows were
fetched; repositories build them, the resolver reasons about them.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


DEFAULT_SPECIALTY = "Clinical Nutrition"
DEFAULT_CONSULTATION_FEE = 800.0
PLACEHOLDER_PHOTO = "nutriologo_default.png"


class InvalidRowError(ValueError):
    """Raised when a row read from the store doesn't fit the expected shape."""
    pass


class AssignmentState(Enum):
    """
    Where a client stands with their coach.

    Derived from two facts owned by other systems (an active coach link and
    an active diet plan). Never stored, always recomputed.
    """
    UNASSIGNED = "unassigned"
    ASSIGNED_NO_PLAN = "assigned_no_plan"
    ASSIGNED_WITH_PLAN = "assigned_with_plan"


class Capability(str, Enum):
    """Features a client may try to use from the app."""
    VIEW_MEAL_PLAN = "view_meal_plan"
    VIEW_EXERCISE_ROUTINE = "view_exercise_routine"
    CHAT_WITH_COACH = "chat_with_coach"
    VIEW_DETAILED_PROGRESS = "view_detailed_progress"
    RECEIVE_RECOMMENDATIONS = "receive_recommendations"
    VIEW_PERSONALIZED_DIET = "view_personalized_diet"
    VIEW_ASSIGNED_EXERCISES = "view_assigned_exercises"
    REQUEST_ADVICE = "request_advice"
    LOG_FOOD_INTAKE = "log_food_intake"
    # Not gated on assignment
    VIEW_POINTS = "view_points"
    BOOK_APPOINTMENT = "book_appointment"
    EDIT_PROFILE = "edit_profile"


@dataclass(frozen=True)
class ActiveLink:
    """The current client -> coach relationship row."""
    coach_id: int
    active: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.coach_id, int) or isinstance(self.coach_id, bool):
            raise InvalidRowError(f"coach_id must be an integer, got {self.coach_id!r}")
        if self.coach_id <= 0:
            raise InvalidRowError("coach_id must be positive")


@dataclass(frozen=True)
class DietPlanRef:
    """Marker for an active diet plan. Only its existence matters."""
    plan_id: str

    def __post_init__(self) -> None:
        if not str(self.plan_id).strip():
            raise InvalidRowError("plan_id cannot be empty")


def _check_coach_identity(coach_id, first_name: str, last_name: str) -> None:
    """Checks shared by every coach row: a positive integer id and a full name."""
    if not isinstance(coach_id, int) or isinstance(coach_id, bool) or coach_id <= 0:
        raise InvalidRowError(f"Coach id must be a positive integer, got {coach_id!r}")
    if not (first_name or "").strip() or not (last_name or "").strip():
        raise InvalidRowError("Coach first and last name cannot be empty")


@dataclass(frozen=True)
class Coach:
    """
    A coach profile, read-only from the client's side.

    Validated on construction so a malformed row never reaches the UI.
    """
    id: int
    first_name: str
    last_name: str
    email: str = ""
    specialty: Optional[str] = None
    license_number: Optional[str] = None
    photo_url: Optional[str] = None
    description: Optional[str] = None
    average_rating: Optional[float] = None

    def __post_init__(self) -> None:
        _check_coach_identity(self.id, self.first_name, self.last_name)
        if self.average_rating is not None and not 0 <= self.average_rating <= 5:
            raise InvalidRowError("Coach average rating must be between 0 and 5")

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class CoachListing:
    """A coach as shown in the directory clients choose from."""
    id: int
    first_name: str
    last_name: str
    specialty: str = DEFAULT_SPECIALTY
    consultation_fee: float = DEFAULT_CONSULTATION_FEE
    photo_url: Optional[str] = None

    def __post_init__(self) -> None:
        _check_coach_identity(self.id, self.first_name, self.last_name)
        if self.consultation_fee < 0:
            raise InvalidRowError("Consultation fee cannot be negative")

    @property
    def display_name(self) -> str:
        return f"Dr. {self.first_name} {self.last_name}"


@dataclass(frozen=True)
class Resolution:
    """
    Result of one resolution pass.

    A coach is present exactly when the client is assigned.
    """
    client_id: int
    state: AssignmentState
    coach: Optional[Coach] = None

    def __post_init__(self) -> None:
        if self.state == AssignmentState.UNASSIGNED and self.coach is not None:
            raise ValueError("An unassigned client cannot have a coach")
        if self.state != AssignmentState.UNASSIGNED and self.coach is None:
            raise ValueError("An assigned client must have a coach")

    @property
    def has_diet_plan(self) -> bool:
        return self.state == AssignmentState.ASSIGNED_WITH_PLAN

    @property
    def is_assigned(self) -> bool:
        return self.state != AssignmentState.UNASSIGNED


@dataclass(frozen=True)
class StatusMessage:
    """Text and styling the UI shows for an assignment state."""
    title: str
    message: str
    action_label: str
    icon: str
    color: str
    background_color: str


@dataclass(frozen=True)
class AssignmentResult:
    """Outcome of a coach assignment request."""
    success: bool
    error: Optional[str] = None


@dataclass
class AssignmentStore:
    """
    In-memory assignment state for one client session.

    Holds the last resolution and is overwritten wholesale on each refresh.
    Nothing here is persisted.
    """
    client_id: Optional[int] = None
    resolution: Optional[Resolution] = None
    loading: bool = False
    resolved_at: Optional[datetime] = None

    @property
    def state(self) -> Optional[AssignmentState]:
        return self.resolution.state if self.resolution else None

    @property
    def coach(self) -> Optional[Coach]:
        return self.resolution.coach if self.resolution else None

    def clear(self) -> None:
        """Forget the client entirely (signed out or unknown)."""
        self.client_id = None
        self.resolution = None
        self.resolved_at = None
        self.loading = False
