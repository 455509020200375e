"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .assignments import AssignmentRepository, AssignmentWriteError

__all__ = ["AssignmentRepository", "AssignmentWriteError"]
