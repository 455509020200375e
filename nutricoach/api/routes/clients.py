"""
Client assignment endpoints.

Exposes the assignment resolver to the mobile app:
- look up the client behind the signed-in e-mail
- resolve the client's coach / diet plan status
- check whether a feature is unlocked
- request a coach
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from ...core.assignment import (
    AssignmentStore,
    Coach,
    Resolution,
    can_access,
    describe,
    refresh,
    request_and_refresh,
    restriction_message,
)
from ..dependencies import AssignmentRepositoryDep, AuthenticatedUser

logger = logging.getLogger(__name__)

router = APIRouter()


class ClientNotFoundError(Exception):
    """Raised when no client matches a lookup."""
    pass


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CoachResponse(BaseModel):
    """Profile of the client's coach."""
    id: int
    first_name: str
    last_name: str
    display_name: str
    email: str
    specialty: Optional[str] = None
    license_number: Optional[str] = None
    photo_url: Optional[str] = None
    description: Optional[str] = None
    average_rating: Optional[float] = None


class StatusMessageResponse(BaseModel):
    """Copy and styling for the status card."""
    title: str
    message: str
    action_label: str
    icon: str
    color: str
    background_color: str


class AssignmentResponse(BaseModel):
    """A client's resolved assignment status."""
    client_id: int
    state: str = Field(description="unassigned, assigned_no_plan or assigned_with_plan")
    has_diet_plan: bool
    coach: Optional[CoachResponse] = None
    status_message: StatusMessageResponse


class ClientLookupResponse(BaseModel):
    client_id: int


class AccessResponse(BaseModel):
    """Whether a feature is unlocked for the client."""
    capability: str
    allowed: bool
    message: Optional[str] = Field(None, description="Why access was denied, if it was")


class AssignmentRequest(BaseModel):
    coach_id: int = Field(gt=0, description="Coach to assign")


class AssignmentRequestResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    assignment: Optional[AssignmentResponse] = None


def _coach_response(coach: Coach) -> CoachResponse:
    return CoachResponse(
        id=coach.id,
        first_name=coach.first_name,
        last_name=coach.last_name,
        display_name=coach.display_name,
        email=coach.email,
        specialty=coach.specialty,
        license_number=coach.license_number,
        photo_url=coach.photo_url,
        description=coach.description,
        average_rating=coach.average_rating,
    )


def _assignment_response(resolution: Resolution) -> AssignmentResponse:
    message = describe(resolution.state, resolution.coach)
    return AssignmentResponse(
        client_id=resolution.client_id,
        state=resolution.state.value,
        has_diet_plan=resolution.has_diet_plan,
        coach=_coach_response(resolution.coach) if resolution.coach else None,
        status_message=StatusMessageResponse(
            title=message.title,
            message=message.message,
            action_label=message.action_label,
            icon=message.icon,
            color=message.color,
            background_color=message.background_color,
        ),
    )


def _resolve_store(client_id: int, repository) -> AssignmentStore:
    store = AssignmentStore(client_id=client_id)
    refresh(store, repository)
    return store


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/lookup",
    response_model=ClientLookupResponse,
    summary="Find client by e-mail",
)
async def lookup_client(
    api_key: AuthenticatedUser,
    repository: AssignmentRepositoryDep,
    email: str = Query(min_length=3, description="E-mail of the signed-in user"),
) -> ClientLookupResponse:
    """Map the authenticated e-mail to a client ID. 404 if unknown."""
    client_id = repository.find_client_id(email)
    if client_id is None:
        raise ClientNotFoundError(f"No client registered with e-mail {email}")

    return ClientLookupResponse(client_id=client_id)


@router.get(
    "/{client_id}/assignment",
    response_model=AssignmentResponse,
    summary="Get assignment status",
    description="Resolve the client's coach and diet plan status. Never fails on read errors.",
)
async def get_assignment(
    client_id: int,
    api_key: AuthenticatedUser,
    repository: AssignmentRepositoryDep,
) -> AssignmentResponse:
    store = _resolve_store(client_id, repository)
    return _assignment_response(store.resolution)


@router.get(
    "/{client_id}/access/{capability}",
    response_model=AccessResponse,
    summary="Check feature access",
)
async def check_access(
    client_id: int,
    capability: str,
    api_key: AuthenticatedUser,
    repository: AssignmentRepositoryDep,
) -> AccessResponse:
    """Whether the client may use `capability`, with an explanation if not."""
    store = _resolve_store(client_id, repository)
    allowed = can_access(store.state, capability)

    return AccessResponse(
        capability=capability,
        allowed=allowed,
        message=None if allowed else restriction_message(store.state, capability),
    )


@router.post(
    "/{client_id}/assignment",
    response_model=AssignmentRequestResponse,
    status_code=status.HTTP_200_OK,
    summary="Request a coach",
    description="Replace the client's active coach. Failures are reported in the body.",
)
async def request_coach(
    client_id: int,
    request: AssignmentRequest,
    api_key: AuthenticatedUser,
    repository: AssignmentRepositoryDep,
) -> AssignmentRequestResponse:
    store = AssignmentStore(client_id=client_id)
    result = request_and_refresh(store, repository, request.coach_id)

    if not result.success:
        logger.warning(
            "Coach request failed",
            extra={"client_id": client_id, "coach_id": request.coach_id, "error": result.error}
        )
        return AssignmentRequestResponse(success=False, error=result.error)

    return AssignmentRequestResponse(
        success=True,
        assignment=_assignment_response(store.resolution),
    )
