"""
Snowflake database connection management.

Provides connection factory and context manager for Snowflake operations.
Includes mock mode with in-memory storage for local development.

Most code never touches this module directly - it goes through
AssignmentRepository, which handles the translation between domain models
and database rows.
"""

import base64
import copy
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Optional
from uuid import uuid4

from .repositories.assignments import SnowflakeConfig, SnowflakeConnection

logger = logging.getLogger(__name__)


class SnowflakeConnectionError(Exception):
    """Raised when Snowflake connection fails."""
    pass


class MockQueryError(Exception):
    """Raised by the mock cursor when a failure has been injected."""
    pass


def _load_private_key(
    key_path: Optional[str] = None,
    key_base64: Optional[str] = None,
) -> bytes:
    """
    Load a PEM private key for key-pair authentication.

    Snowflake wants the key as DER bytes, not a path, so we read the PEM
    (from a file or a base64-encoded env value) and re-encode it.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    if key_path:
        with open(key_path, 'rb') as key_file:
            pem = key_file.read()
    elif key_base64:
        pem = base64.b64decode(key_base64)
    else:
        raise SnowflakeConnectionError("No private key provided")

    private_key = serialization.load_pem_private_key(
        pem,
        password=None,
        backend=default_backend()
    )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide Snowflake connection with automatic cleanup.

    Supports both password and key-pair authentication:
    - If a private key (path or base64) is set, uses key-pair auth
    - Otherwise, uses password auth

    The connection is always closed, even if an exception occurs.

    Usage:
        with get_snowflake_connection(config) as conn:
            repo = AssignmentRepository(conn)
    """
    try:
        import snowflake.connector
    except ImportError:
        raise ImportError(
            "snowflake-connector-python is required. "
            "Install with: pip install snowflake-connector-python"
        )

    conn = None
    try:
        connect_params = {
            'account': config.account,
            'user': config.user,
            'database': config.database,
            'schema': config.schema,
            'warehouse': config.warehouse,
            'role': config.role,
            'client_session_keep_alive': True,
        }

        if config.private_key_path or config.private_key_base64:
            logger.info("Using key-pair authentication for Snowflake")
            connect_params['private_key'] = _load_private_key(
                config.private_key_path, config.private_key_base64
            )
        elif config.password:
            logger.info("Using password authentication for Snowflake")
            connect_params['password'] = config.password
        else:
            raise SnowflakeConnectionError(
                "Either password or a private key must be provided"
            )

        try:
            conn = snowflake.connector.connect(**connect_params)
        except snowflake.connector.errors.DatabaseError as e:
            logger.error(
                "Snowflake connection failed",
                extra={"error": str(e), "account": config.account}
            )
            raise SnowflakeConnectionError(f"Database connection failed: {e}")

        logger.debug(
            "Established Snowflake connection",
            extra={
                "account": config.account,
                "database": config.database,
                "schema": config.schema,
            }
        )

        yield conn

    finally:
        if conn:
            try:
                conn.close()
                logger.debug("Closed Snowflake connection")
            except Exception as e:
                logger.warning(
                    "Error closing Snowflake connection",
                    extra={"error": str(e)}
                )


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

class MockSnowflakeCursor:
    """
    Mock Snowflake cursor for testing.

    Implements just enough of the cursor interface to support
    AssignmentRepository without a real database, by pattern matching
    on the handful of queries the repository issues.
    """

    def __init__(self, connection: 'MockSnowflakeConnection') -> None:
        self._conn = connection
        self._storage = connection._storage
        self._results: list = []
        self._rowcount: int = 0

    def execute(self, query: str, params: Optional[tuple] = None) -> 'MockSnowflakeCursor':
        """Execute a query against mock storage."""
        logger.debug(
            "Mock cursor execute",
            extra={"query": query[:100], "params": params}
        )

        query_upper = " ".join(query.upper().split())
        self._conn._check_injected_failure(query_upper)

        self._results = []
        self._rowcount = 0

        if query_upper.startswith('BEGIN'):
            self._conn._begin()
        elif query_upper.startswith('CREATE'):
            pass
        elif query_upper.startswith('SELECT'):
            self._handle_select(query_upper, params or ())
        elif query_upper.startswith('UPDATE CLIENT_COACH_LINKS'):
            self._handle_deactivate(params or ())
        elif query_upper.startswith('INSERT INTO CLIENT_COACH_LINKS'):
            self._handle_insert_link(params or ())

        return self

    def _handle_select(self, query: str, params: tuple) -> None:
        if 'FROM CLIENT_COACH_LINKS' in query:
            client_id = params[0]
            links = [
                link for link in self._storage['client_coach_links'].values()
                if link['client_id'] == client_id and link['active']
            ]
            links.sort(key=lambda link: link['assigned_at'], reverse=True)
            self._results = [(link['coach_id'], link['active']) for link in links[:1]]

        elif 'FROM CLIENTS' in query:
            email = params[0].lower()
            self._results = [
                (client['client_id'],)
                for client in self._storage['clients'].values()
                if client['email'].lower() == email
            ][:1]

        elif 'FROM DIET_PLANS' in query:
            client_id = params[0]
            self._results = [
                (plan['plan_id'],)
                for plan in self._storage['diet_plans'].values()
                if plan['client_id'] == client_id and plan['active']
            ][:1]

        elif query.startswith('SELECT 1 FROM COACHES'):
            coach = self._storage['coaches'].get(params[0])
            if coach and coach['active']:
                self._results = [(1,)]

        elif 'FROM COACHES' in query and 'WHERE COACH_ID' in query:
            coach = self._storage['coaches'].get(params[0])
            if coach:
                self._results = [(
                    coach['coach_id'],
                    coach['first_name'],
                    coach['last_name'],
                    coach['email'],
                    coach['specialty'],
                    coach['license_number'],
                    coach['photo_url'],
                    coach['description'],
                    coach['average_rating'],
                )]

        elif 'FROM COACHES' in query:
            coaches = [c for c in self._storage['coaches'].values() if c['active']]
            coaches.sort(key=lambda c: c['first_name'])
            self._results = [
                (
                    c['coach_id'],
                    c['first_name'],
                    c['last_name'],
                    c['specialty'],
                    c['consultation_fee'],
                    c['photo_url'],
                )
                for c in coaches
            ]

    def _handle_deactivate(self, params: tuple) -> None:
        client_id = params[0]
        for link in self._storage['client_coach_links'].values():
            if link['client_id'] == client_id and link['active']:
                link['active'] = False
                self._rowcount += 1

    def _handle_insert_link(self, params: tuple) -> None:
        link_id, client_id, coach_id, assigned_at = params[:4]
        self._storage['client_coach_links'][str(link_id)] = {
            'link_id': str(link_id),
            'client_id': client_id,
            'coach_id': coach_id,
            'assigned_at': assigned_at,
            'active': True,
        }
        self._rowcount = 1

    def fetchone(self):
        """Fetch one row from results."""
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        """Fetch all rows from results."""
        return self._results

    def close(self) -> None:
        """Close cursor (no-op for mock)."""
        pass

    @property
    def rowcount(self) -> int:
        """Return number of rows affected."""
        return self._rowcount


class MockSnowflakeConnection:
    """
    Mock Snowflake connection for local development.

    Stores data in memory and honours BEGIN/COMMIT/ROLLBACK by snapshotting
    the tables when a transaction starts.

    Not suitable for production, but fine for:
    - Local development
    - Unit tests
    - CI/CD environments
    """

    def __init__(self) -> None:
        # In-memory storage: {table_name: {id: row_dict}}
        self._storage: dict[str, dict] = {
            'clients': {},
            'coaches': {},
            'client_coach_links': {},
            'diet_plans': {},
        }
        self._snapshot: Optional[dict] = None
        self._failures: list[str] = []

        logger.info("Initialized mock Snowflake connection (in-memory)")

    def cursor(self) -> MockSnowflakeCursor:
        """Create a mock cursor."""
        return MockSnowflakeCursor(self)

    def commit(self) -> None:
        """Commit the open transaction, if any."""
        self._snapshot = None
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        """Restore the tables to where they were at BEGIN."""
        if self._snapshot is not None:
            self._storage.clear()
            self._storage.update(self._snapshot)
            self._snapshot = None
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        """Close connection (no-op for mock)."""
        logger.debug("Mock connection close")

    def _begin(self) -> None:
        self._snapshot = copy.deepcopy(self._storage)

    def _check_injected_failure(self, query: str) -> None:
        for fragment in self._failures:
            if fragment in query:
                raise MockQueryError(f"Injected failure for query matching {fragment!r}")

    # Helper methods for testing and local seeding
    def _fail_on(self, fragment: str) -> None:
        """Make every query containing `fragment` raise (for failure tests)."""
        self._failures.append(fragment.upper())

    def _add_client(self, client_id: int, email: str) -> None:
        self._storage['clients'][client_id] = {'client_id': client_id, 'email': email}

    def _add_coach(
        self,
        coach_id: int,
        first_name: str,
        last_name: str,
        **fields,
    ) -> None:
        self._storage['coaches'][coach_id] = {
            'coach_id': coach_id,
            'first_name': first_name,
            'last_name': last_name,
            'email': fields.get('email', f"{first_name.lower()}@nutricoach.test"),
            'specialty': fields.get('specialty'),
            'license_number': fields.get('license_number'),
            'photo_url': fields.get('photo_url'),
            'description': fields.get('description'),
            'average_rating': fields.get('average_rating'),
            'consultation_fee': fields.get('consultation_fee'),
            'active': fields.get('active', True),
        }

    def _add_link(
        self,
        client_id: int,
        coach_id: int,
        active: bool = True,
        assigned_at: Optional[datetime] = None,
    ) -> str:
        link_id = str(uuid4())
        self._storage['client_coach_links'][link_id] = {
            'link_id': link_id,
            'client_id': client_id,
            'coach_id': coach_id,
            'assigned_at': assigned_at or datetime.now(timezone.utc),
            'active': active,
        }
        return link_id

    def _add_plan(self, client_id: int, active: bool = True) -> str:
        plan_id = str(uuid4())
        self._storage['diet_plans'][plan_id] = {
            'plan_id': plan_id,
            'client_id': client_id,
            'active': active,
        }
        return plan_id

    def _links_for(self, client_id: int) -> list[dict]:
        """All link rows for a client (for test assertions)."""
        return [
            link for link in self._storage['client_coach_links'].values()
            if link['client_id'] == client_id
        ]

    def _clear(self) -> None:
        """Clear all mock storage (for test cleanup)."""
        for table in self._storage.values():
            table.clear()
        self._failures.clear()


@contextmanager
def get_mock_snowflake_connection() -> Generator[MockSnowflakeConnection, None, None]:
    """Provide a fresh in-memory connection."""
    conn = MockSnowflakeConnection()
    try:
        yield conn
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

@contextmanager
def create_snowflake_connection(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
) -> Generator[SnowflakeConnection, None, None]:
    """
    Create Snowflake connection based on configuration.

    Args:
        config: Snowflake configuration (required if not mock_mode)
        mock_mode: If True, return mock connection for testing

    Yields:
        SnowflakeConnection implementation (real or mock)
    """
    if mock_mode:
        with get_mock_snowflake_connection() as conn:
            yield conn
    else:
        if config is None:
            raise ValueError("config is required when not in mock mode")

        with get_snowflake_connection(config) as conn:
            yield conn
