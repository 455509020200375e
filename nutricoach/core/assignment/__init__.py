"""
Coach assignment logic.

Contains the domain models and the resolver that derives a client's
assignment state, gates features on it, and describes it to the UI.
"""

from .models import (
    ActiveLink,
    AssignmentResult,
    AssignmentState,
    AssignmentStore,
    Capability,
    Coach,
    CoachListing,
    DietPlanRef,
    InvalidRowError,
    Resolution,
    StatusMessage,
)
from .resolver import (
    RESTRICTED_CAPABILITIES,
    AssignmentReader,
    AssignmentWriter,
    ClientDirectory,
    bind_client,
    can_access,
    describe,
    refresh,
    request_and_refresh,
    request_assignment,
    resolve,
    restriction_message,
)

__all__ = [
    "ActiveLink",
    "AssignmentResult",
    "AssignmentState",
    "AssignmentStore",
    "Capability",
    "Coach",
    "CoachListing",
    "DietPlanRef",
    "InvalidRowError",
    "Resolution",
    "StatusMessage",
    "RESTRICTED_CAPABILITIES",
    "AssignmentReader",
    "AssignmentWriter",
    "ClientDirectory",
    "bind_client",
    "can_access",
    "describe",
    "refresh",
    "request_and_refresh",
    "request_assignment",
    "resolve",
    "restriction_message",
]
