"""
Snowflake repository for coach assignments.

This module implements the repository pattern for the four tables the
assignment resolver depends on:

    clients             (client_id, email, ...)
    coaches             (coach_id, first_name, last_name, ..., active)
    client_coach_links  (link_id, client_id, coach_id, assigned_at, active)
    diet_plans          (plan_id, client_id, active, ...)

The repository:
1. Encapsulates all SQL queries
2. Validates rows on the way in and turns them into domain models
3. Runs the deactivate-then-insert link swap inside one transaction

The resolver never writes SQL - it asks the repository in domain terms.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol
from uuid import uuid4

from nutricoach.core.assignment.models import (
    DEFAULT_CONSULTATION_FEE,
    DEFAULT_SPECIALTY,
    PLACEHOLDER_PHOTO,
    ActiveLink,
    Coach,
    CoachListing,
    DietPlanRef,
    InvalidRowError,
)


logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Using a protocol means tests can provide a mock without
    importing the actual snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "NUTRICOACH"
    schema: str = "CLIENTS"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


class AssignmentWriteError(Exception):
    """Raised when a coach link could not be replaced. Nothing was changed."""
    pass


def _to_int(value, column: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRowError(f"{column} must be an integer, got {value!r}")


def _optional_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _photo(value) -> Optional[str]:
    photo = _optional_text(value)
    if photo == PLACEHOLDER_PHOTO:
        return None
    return photo


class AssignmentRepository:
    """
    Repository for client/coach assignment data.

    Each method corresponds to a question the resolver or API asks:
    - find_client_id: Which client is behind this e-mail?
    - get_active_link: Who is the client's current coach?
    - get_coach: Load a coach profile
    - has_active_plan: Does the client have a diet plan in effect?
    - list_active_coaches: Coaches a client can pick from
    - replace_active_link: Make one coach the client's only active coach
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def find_client_id(self, email: str) -> Optional[int]:
        """Look up a client by e-mail, ignoring case."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT client_id
                FROM clients
                WHERE LOWER(email) = LOWER(%s)
                LIMIT 1
            """, (email.strip(),))

            row = cursor.fetchone()
            if not row:
                return None
            return _to_int(row[0], "client_id")

        finally:
            cursor.close()

    def get_active_link(self, client_id: int) -> Optional[ActiveLink]:
        """
        The client's active coach link, or None.

        Should there ever be more than one active link, the newest wins.
        """
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT coach_id, active
                FROM client_coach_links
                WHERE client_id = %s
                  AND active = TRUE
                ORDER BY assigned_at DESC
                LIMIT 1
            """, (client_id,))

            row = cursor.fetchone()
            if not row:
                return None

            return ActiveLink(
                coach_id=_to_int(row[0], "coach_id"),
                active=bool(row[1]),
            )

        finally:
            cursor.close()

    def get_coach(self, coach_id: int) -> Optional[Coach]:
        """Load a coach profile by ID."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT
                    coach_id,
                    first_name,
                    last_name,
                    email,
                    specialty,
                    license_number,
                    photo_url,
                    description,
                    average_rating
                FROM coaches
                WHERE coach_id = %s
            """, (coach_id,))

            row = cursor.fetchone()
            if not row:
                return None

            return self._build_coach(row)

        finally:
            cursor.close()

    def has_active_plan(self, client_id: int) -> bool:
        """Whether the client has a diet plan in effect."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT plan_id
                FROM diet_plans
                WHERE client_id = %s
                  AND active = TRUE
                LIMIT 1
            """, (client_id,))

            row = cursor.fetchone()
            if not row:
                return False

            plan = self._build_plan(row)
            logger.debug(
                "Found active diet plan",
                extra={"client_id": client_id, "plan_id": plan.plan_id}
            )
            return True

        finally:
            cursor.close()

    def list_active_coaches(self) -> list[CoachListing]:
        """Coaches currently taking clients, ordered by first name."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT
                    coach_id,
                    first_name,
                    last_name,
                    specialty,
                    consultation_fee,
                    photo_url
                FROM coaches
                WHERE active = TRUE
                ORDER BY first_name
            """)

            rows = cursor.fetchall()
            return [self._build_listing(row) for row in rows]

        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def replace_active_link(
        self,
        client_id: int,
        coach_id: int,
        assigned_at: datetime,
    ) -> None:
        """
        Deactivate the client's current links and insert a new active one.

        The coach must exist and be active. The check and both statements
        run in one transaction. If any of them fails the transaction is
        rolled back, so the client keeps whatever link they had before.
        """
        cursor = self._conn.cursor()

        try:
            cursor.execute("BEGIN")

            cursor.execute("""
                SELECT 1
                FROM coaches
                WHERE coach_id = %s
                  AND active = TRUE
            """, (coach_id,))

            if not cursor.fetchone():
                raise LookupError(f"coach {coach_id} is not available")

            cursor.execute("""
                UPDATE client_coach_links
                SET active = FALSE
                WHERE client_id = %s
                  AND active = TRUE
            """, (client_id,))

            cursor.execute("""
                INSERT INTO client_coach_links (
                    link_id,
                    client_id,
                    coach_id,
                    assigned_at,
                    active
                ) VALUES (%s, %s, %s, %s, TRUE)
            """, (str(uuid4()), client_id, coach_id, assigned_at))

            self._conn.commit()

            logger.info(
                "Replaced active coach link",
                extra={"client_id": client_id, "coach_id": coach_id}
            )

        except Exception as e:
            logger.error(
                "Failed to replace coach link, rolling back",
                extra={"client_id": client_id, "coach_id": coach_id, "error": str(e)}
            )
            try:
                self._conn.rollback()
            except Exception as rollback_error:
                logger.error(
                    "Rollback failed",
                    extra={"client_id": client_id, "error": str(rollback_error)}
                )
            raise AssignmentWriteError(f"Could not assign coach {coach_id}: {e}") from e

        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _build_coach(self, row) -> Coach:
        """Build a Coach from a coaches row, validating as we go."""
        rating = row[8]
        return Coach(
            id=_to_int(row[0], "coach_id"),
            first_name=row[1] or "",
            last_name=row[2] or "",
            email=row[3] or "",
            specialty=_optional_text(row[4]),
            license_number=_optional_text(row[5]),
            photo_url=_photo(row[6]),
            description=_optional_text(row[7]),
            average_rating=float(rating) if rating is not None else None,
        )

    def _build_listing(self, row) -> CoachListing:
        """Build a directory entry, filling in display defaults."""
        fee = row[4]
        return CoachListing(
            id=_to_int(row[0], "coach_id"),
            first_name=row[1] or "",
            last_name=row[2] or "",
            specialty=_optional_text(row[3]) or DEFAULT_SPECIALTY,
            consultation_fee=float(fee) if fee is not None else DEFAULT_CONSULTATION_FEE,
            photo_url=_photo(row[5]),
        )

    def _build_plan(self, row) -> DietPlanRef:
        plan_id = row[0]
        return DietPlanRef(plan_id=str(plan_id) if plan_id is not None else "")
