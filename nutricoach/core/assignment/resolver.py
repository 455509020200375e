"""
Assignment status resolution.

Works out whether a client has a coach and a diet plan, which features that
unlocks, and what the app should tell them about it.

The resolver never talks to a database directly. It depends on small
protocols (AssignmentReader, AssignmentWriter, ClientDirectory) that the
Snowflake repository implements, so tests can hand in a fake.

Read failures are fail-closed: any error while resolving turns
into UNASSIGNED, which is the least-access state. The error goes to the log
and nowhere else.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol, Union

from .models import (
    ActiveLink,
    AssignmentResult,
    AssignmentState,
    AssignmentStore,
    Capability,
    Coach,
    Resolution,
    StatusMessage,
)

logger = logging.getLogger(__name__)


# Only granted once the coach has delivered a diet plan
RESTRICTED_CAPABILITIES: frozenset[str] = frozenset({
    Capability.VIEW_MEAL_PLAN.value,
    Capability.VIEW_EXERCISE_ROUTINE.value,
    Capability.CHAT_WITH_COACH.value,
    Capability.VIEW_DETAILED_PROGRESS.value,
    Capability.RECEIVE_RECOMMENDATIONS.value,
    Capability.VIEW_PERSONALIZED_DIET.value,
    Capability.VIEW_ASSIGNED_EXERCISES.value,
    Capability.REQUEST_ADVICE.value,
    Capability.LOG_FOOD_INTAKE.value,
})


class AssignmentReader(Protocol):
    """Read side of the external store."""

    def get_active_link(self, client_id: int) -> Optional[ActiveLink]: ...
    def get_coach(self, coach_id: int) -> Optional[Coach]: ...
    def has_active_plan(self, client_id: int) -> bool: ...


class AssignmentWriter(Protocol):
    """Write side of the external store."""

    def replace_active_link(
        self, client_id: int, coach_id: int, assigned_at: datetime
    ) -> None: ...


class ClientDirectory(Protocol):
    """Maps an authenticated e-mail to the client record."""

    def find_client_id(self, email: str) -> Optional[int]: ...


class CoachMissingError(LookupError):
    """An active link points at a coach that can't be loaded."""
    pass


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def resolve(reader: AssignmentReader, client_id: int) -> Resolution:
    """
    Determine the client's assignment state.

    Queries run in order: active link, coach profile, active plan. Any
    exception along the way yields UNASSIGNED with no coach.
    """
    try:
        link = reader.get_active_link(client_id)
        if link is None:
            logger.debug("No active coach link", extra={"client_id": client_id})
            return Resolution(client_id=client_id, state=AssignmentState.UNASSIGNED)

        coach = reader.get_coach(link.coach_id)
        if coach is None:
            raise CoachMissingError(f"Coach {link.coach_id} not found")

        if reader.has_active_plan(client_id):
            state = AssignmentState.ASSIGNED_WITH_PLAN
        else:
            state = AssignmentState.ASSIGNED_NO_PLAN

        logger.debug(
            "Resolved assignment",
            extra={"client_id": client_id, "state": state.value, "coach_id": coach.id}
        )
        return Resolution(client_id=client_id, state=state, coach=coach)

    except Exception as e:
        logger.error(
            "Failed to resolve assignment, falling back to unassigned",
            extra={"client_id": client_id, "error": str(e)}
        )
        return Resolution(client_id=client_id, state=AssignmentState.UNASSIGNED)


def refresh(store: AssignmentStore, reader: AssignmentReader) -> Optional[Resolution]:
    """
    Re-resolve the store's client and overwrite the store.

    Does nothing when the store has no client yet.
    """
    if store.client_id is None:
        store.loading = False
        return None

    store.loading = True
    try:
        resolution = resolve(reader, store.client_id)
    finally:
        store.loading = False

    store.resolution = resolution
    store.resolved_at = datetime.now(timezone.utc)
    return resolution


def bind_client(
    store: AssignmentStore,
    directory: ClientDirectory,
    reader: AssignmentReader,
    email: Optional[str],
) -> Optional[Resolution]:
    """
    Attach the store to the client behind an e-mail and resolve.

    An empty e-mail, unknown client, or failed lookup leaves the store cleared.
    """
    if not email:
        store.clear()
        return None

    store.loading = True
    try:
        client_id = directory.find_client_id(email)
    except Exception as e:
        logger.error(
            "Failed to look up client by email",
            extra={"email": email, "error": str(e)}
        )
        client_id = None

    if client_id is None:
        logger.info("No client found for email", extra={"email": email})
        store.clear()
        return None

    store.client_id = client_id
    return refresh(store, reader)


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------

def can_access(
    state: Optional[AssignmentState],
    capability: Union[Capability, str],
) -> bool:
    """
    Whether a client in `state` may use `capability`.

    Restricted capabilities need ASSIGNED_WITH_PLAN; everything else is open.
    With no resolved state, nothing is allowed.
    """
    if state is None:
        return False

    name = capability.value if isinstance(capability, Capability) else capability
    if name in RESTRICTED_CAPABILITIES:
        return state == AssignmentState.ASSIGNED_WITH_PLAN

    return True


def _capability_label(capability: Union[Capability, str]) -> str:
    name = capability.value if isinstance(capability, Capability) else capability
    return name.replace("_", " ")


def restriction_message(
    state: Optional[AssignmentState],
    capability: Union[Capability, str],
) -> str:
    """Explanation shown when a client hits a gated feature."""
    label = _capability_label(capability)

    if state == AssignmentState.UNASSIGNED:
        return (
            f"You don't have a coach assigned yet. To {label}, "
            "first book an appointment with one of our coaches."
        )
    if state == AssignmentState.ASSIGNED_NO_PLAN:
        return (
            f"Your coach hasn't assigned your plan yet. You'll be able to {label} "
            "once your personalized diet is ready."
        )
    if state == AssignmentState.ASSIGNED_WITH_PLAN:
        return "Your coach has personalized this section for you."
    return f"You can't {label} right now."


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------

def describe(
    state: Optional[AssignmentState],
    coach: Optional[Coach] = None,
) -> StatusMessage:
    """Message bundle for the status card."""
    if state == AssignmentState.UNASSIGNED:
        return StatusMessage(
            title="No Coach Assigned",
            message=(
                "You don't have a coach assigned right now. Book a consultation "
                "with one of our professionals to get a personalized plan."
            ),
            action_label="Book consultation",
            icon="calendar-outline",
            color="#17A2B8",
            background_color="#E3F2FD",
        )

    if state == AssignmentState.ASSIGNED_NO_PLAN:
        who = f"Your coach {coach.display_name}" if coach else "Your coach"
        return StatusMessage(
            title="Coach Assigned - No Plan Yet",
            message=(
                f"{who} hasn't assigned your meal plan yet. "
                "Hang tight while your personalized diet is prepared."
            ),
            action_label="View coach profile",
            icon="time-outline",
            color="#FFA500",
            background_color="#FFF3CD",
        )

    if state == AssignmentState.ASSIGNED_WITH_PLAN:
        who = f"Your coach {coach.display_name}" if coach else "Your coach"
        return StatusMessage(
            title="Meal Plan Assigned",
            message=f"{who} has prepared a personalized plan for you.",
            action_label="View meal plan",
            icon="checkmark-circle-outline",
            color="#28A745",
            background_color="#D4EDDA",
        )

    return StatusMessage(
        title="Status Unavailable",
        message="We couldn't determine your assignment status. Please try again later.",
        action_label="Retry",
        icon="refresh-outline",
        color="#6C757D",
        background_color="#E2E3E5",
    )


# ---------------------------------------------------------------------------
# Assignment requests
# ---------------------------------------------------------------------------

def request_assignment(
    writer: AssignmentWriter,
    client_id: int,
    coach_id: int,
) -> AssignmentResult:
    """
    Make `coach_id` the client's only active coach.

    Previous links are deactivated and a new one inserted. Failures are
    reported in the result rather than raised.
    """
    logger.info(
        "Requesting coach assignment",
        extra={"client_id": client_id, "coach_id": coach_id}
    )

    try:
        writer.replace_active_link(client_id, coach_id, datetime.now(timezone.utc))
    except Exception as e:
        logger.error(
            "Coach assignment failed",
            extra={"client_id": client_id, "coach_id": coach_id, "error": str(e)}
        )
        return AssignmentResult(success=False, error=str(e))

    logger.info(
        "Coach assigned",
        extra={"client_id": client_id, "coach_id": coach_id}
    )
    return AssignmentResult(success=True)


class AssignmentRepositoryLike(AssignmentReader, AssignmentWriter, Protocol):
    """Anything that can both read and write assignments."""
    pass


def request_and_refresh(
    store: AssignmentStore,
    repository: AssignmentRepositoryLike,
    coach_id: int,
) -> AssignmentResult:
    """Request a coach for the store's client, then re-resolve on success."""
    if store.client_id is None:
        return AssignmentResult(success=False, error="client could not be identified")

    result = request_assignment(repository, store.client_id, coach_id)
    if result.success:
        refresh(store, repository)
    return result
