"""
Coach directory endpoint.

Lists the coaches a client can request.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ..dependencies import AssignmentRepositoryDep, AuthenticatedUser

logger = logging.getLogger(__name__)

router = APIRouter()


class CoachListingResponse(BaseModel):
    """A coach as shown in the booking screen."""
    id: int
    name: str = Field(description="Display name, e.g. 'Dr. Ana Lopez'")
    specialty: str
    consultation_fee: float
    photo_url: Optional[str] = None


class CoachDirectoryResponse(BaseModel):
    coaches: list[CoachListingResponse]
    total: int


@router.get(
    "",
    response_model=CoachDirectoryResponse,
    summary="List active coaches",
)
async def list_coaches(
    api_key: AuthenticatedUser,
    repository: AssignmentRepositoryDep,
) -> CoachDirectoryResponse:
    """Active coaches ordered by first name."""
    try:
        listings = repository.list_active_coaches()
    except Exception as e:
        logger.error("Failed to load coach directory", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Coaches could not be loaded. Try again later.",
        )

    coaches = [
        CoachListingResponse(
            id=listing.id,
            name=listing.display_name,
            specialty=listing.specialty,
            consultation_fee=listing.consultation_fee,
            photo_url=listing.photo_url,
        )
        for listing in listings
    ]
    return CoachDirectoryResponse(coaches=coaches, total=len(coaches))
