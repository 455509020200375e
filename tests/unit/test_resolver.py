"""
Unit tests for assignment resolution, access control and messaging.

The resolver only depends on small protocols, so these tests hand it an
in-memory fake instead of a database.
"""

import logging
from datetime import datetime
from typing import Optional

import pytest

from nutricoach.core.assignment import (
    RESTRICTED_CAPABILITIES,
    ActiveLink,
    AssignmentState,
    AssignmentStore,
    Capability,
    Coach,
    bind_client,
    can_access,
    describe,
    refresh,
    request_and_refresh,
    request_assignment,
    resolve,
    restriction_message,
)


class FakeAssignments:
    """
    In-memory stand-in for AssignmentRepository.

    `failing` holds method names that should raise when called.
    """

    def __init__(self) -> None:
        self.clients: dict[str, int] = {}
        self.coaches: dict[int, Coach] = {}
        self.links: dict[int, int] = {}
        self.plans: set[int] = set()
        self.failing: set[str] = set()
        self.calls: list[str] = []

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise ConnectionError(f"{name} unavailable")

    def find_client_id(self, email: str) -> Optional[int]:
        self._call("find_client_id")
        return self.clients.get(email.lower())

    def get_active_link(self, client_id: int) -> Optional[ActiveLink]:
        self._call("get_active_link")
        coach_id = self.links.get(client_id)
        return ActiveLink(coach_id=coach_id) if coach_id else None

    def get_coach(self, coach_id: int) -> Optional[Coach]:
        self._call("get_coach")
        return self.coaches.get(coach_id)

    def has_active_plan(self, client_id: int) -> bool:
        self._call("has_active_plan")
        return client_id in self.plans

    def replace_active_link(self, client_id: int, coach_id: int, assigned_at: datetime) -> None:
        self._call("replace_active_link")
        self.links[client_id] = coach_id


@pytest.fixture
def repo() -> FakeAssignments:
    fake = FakeAssignments()
    fake.coaches[7] = Coach(id=7, first_name="Ana", last_name="Lopez", specialty="Sports")
    fake.coaches[9] = Coach(id=9, first_name="Luis", last_name="Perez")
    fake.clients["client@example.com"] = 1
    return fake


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------

class TestResolve:
    """Tests for the three-way state derivation."""

    def test_no_link_is_unassigned(self, repo):
        resolution = resolve(repo, 1)

        assert resolution.state == AssignmentState.UNASSIGNED
        assert resolution.coach is None

    def test_link_without_plan_is_assigned_no_plan(self, repo):
        repo.links[1] = 7

        resolution = resolve(repo, 1)

        assert resolution.state == AssignmentState.ASSIGNED_NO_PLAN
        assert resolution.coach.id == 7

    def test_link_with_plan_is_assigned_with_plan(self, repo):
        repo.links[1] = 7
        repo.plans.add(1)

        resolution = resolve(repo, 1)

        assert resolution.state == AssignmentState.ASSIGNED_WITH_PLAN
        assert resolution.coach.id == 7

    def test_plan_without_link_is_still_unassigned(self, repo):
        """A plan alone doesn't make a client assigned."""
        repo.plans.add(1)

        assert resolve(repo, 1).state == AssignmentState.UNASSIGNED

    def test_queries_run_in_order(self, repo):
        repo.links[1] = 7

        resolve(repo, 1)

        assert repo.calls == ["get_active_link", "get_coach", "has_active_plan"]

    def test_skips_other_queries_when_unassigned(self, repo):
        resolve(repo, 1)

        assert repo.calls == ["get_active_link"]

    def test_link_read_failure_fails_closed(self, repo, caplog):
        """Errors collapse to the least-access state and don't propagate."""
        repo.links[1] = 7
        repo.failing.add("get_active_link")

        with caplog.at_level(logging.ERROR):
            resolution = resolve(repo, 1)

        assert resolution.state == AssignmentState.UNASSIGNED
        assert resolution.coach is None
        assert "falling back to unassigned" in caplog.text

    def test_plan_read_failure_fails_closed(self, repo):
        repo.links[1] = 7
        repo.failing.add("has_active_plan")

        resolution = resolve(repo, 1)

        assert resolution.state == AssignmentState.UNASSIGNED
        assert resolution.coach is None

    def test_missing_coach_fails_closed(self, repo):
        """A link to a coach we can't load is treated as a read failure."""
        repo.links[1] = 404

        resolution = resolve(repo, 1)

        assert resolution.state == AssignmentState.UNASSIGNED
        assert resolution.coach is None


# ---------------------------------------------------------------------------
# Store operations
# ---------------------------------------------------------------------------

class TestRefresh:
    """Tests for re-resolving a session store."""

    def test_refresh_without_client_is_noop(self, repo):
        store = AssignmentStore()

        assert refresh(store, repo) is None
        assert store.resolution is None
        assert repo.calls == []

    def test_refresh_overwrites_previous_result(self, repo):
        store = AssignmentStore(client_id=1)
        refresh(store, repo)
        assert store.state == AssignmentState.UNASSIGNED

        repo.links[1] = 7
        repo.plans.add(1)
        refresh(store, repo)

        assert store.state == AssignmentState.ASSIGNED_WITH_PLAN
        assert store.coach.id == 7
        assert store.resolved_at is not None
        assert not store.loading

    def test_refresh_requeries_every_time(self, repo):
        store = AssignmentStore(client_id=1)

        refresh(store, repo)
        refresh(store, repo)

        assert repo.calls.count("get_active_link") == 2


class TestBindClient:
    """Tests for attaching a store to a signed-in e-mail."""

    def test_known_email_resolves(self, repo):
        repo.links[1] = 7
        store = AssignmentStore()

        resolution = bind_client(store, repo, repo, "Client@Example.com")

        assert store.client_id == 1
        assert resolution.state == AssignmentState.ASSIGNED_NO_PLAN

    def test_unknown_email_clears_store(self, repo):
        store = AssignmentStore(client_id=99, loading=True)

        assert bind_client(store, repo, repo, "nobody@example.com") is None
        assert store.client_id is None
        assert store.state is None
        assert not store.loading

    def test_missing_email_clears_store(self, repo):
        store = AssignmentStore(client_id=1)

        bind_client(store, repo, repo, None)

        assert store.client_id is None

    def test_lookup_failure_clears_store(self, repo):
        repo.failing.add("find_client_id")
        store = AssignmentStore()

        assert bind_client(store, repo, repo, "client@example.com") is None
        assert store.client_id is None
        assert not store.loading


# ---------------------------------------------------------------------------
# can_access / restriction_message
# ---------------------------------------------------------------------------

class TestCanAccess:
    """Tests for capability gating."""

    @pytest.mark.parametrize("capability", sorted(RESTRICTED_CAPABILITIES))
    def test_restricted_needs_plan(self, capability):
        assert can_access(AssignmentState.ASSIGNED_WITH_PLAN, capability)
        assert not can_access(AssignmentState.ASSIGNED_NO_PLAN, capability)
        assert not can_access(AssignmentState.UNASSIGNED, capability)

    def test_log_food_intake_needs_plan(self):
        assert can_access(AssignmentState.ASSIGNED_WITH_PLAN, Capability.LOG_FOOD_INTAKE)
        assert not can_access(AssignmentState.UNASSIGNED, Capability.LOG_FOOD_INTAKE)

    @pytest.mark.parametrize("state", list(AssignmentState))
    def test_unknown_capability_always_allowed(self, state):
        assert can_access(state, "unknown-capability-not-in-list")

    @pytest.mark.parametrize("state", list(AssignmentState))
    def test_open_capability_always_allowed(self, state):
        assert can_access(state, Capability.VIEW_POINTS)

    def test_unresolved_state_denies_everything(self):
        assert not can_access(None, "unknown-capability-not-in-list")
        assert not can_access(None, Capability.LOG_FOOD_INTAKE)


class TestRestrictionMessage:

    def test_unassigned_points_to_booking(self):
        message = restriction_message(AssignmentState.UNASSIGNED, Capability.VIEW_MEAL_PLAN)

        assert "book an appointment" in message
        assert "view meal plan" in message

    def test_no_plan_asks_to_wait(self):
        message = restriction_message(AssignmentState.ASSIGNED_NO_PLAN, "log_food_intake")

        assert "hasn't assigned your plan" in message

    def test_unresolved_is_generic(self):
        assert restriction_message(None, "chat_with_coach") == "You can't chat with coach right now."


# ---------------------------------------------------------------------------
# describe
# ---------------------------------------------------------------------------

class TestDescribe:
    """Tests for status card messaging."""

    def test_four_distinct_bundles(self, repo):
        coach = repo.coaches[7]
        titles = {
            describe(AssignmentState.UNASSIGNED).title,
            describe(AssignmentState.ASSIGNED_NO_PLAN, coach).title,
            describe(AssignmentState.ASSIGNED_WITH_PLAN, coach).title,
            describe(None).title,
        }

        assert len(titles) == 4

    def test_no_plan_mentions_coach_name(self, repo):
        message = describe(AssignmentState.ASSIGNED_NO_PLAN, repo.coaches[7])

        assert "Ana Lopez" in message.message
        assert message.action_label == "View coach profile"

    def test_with_plan_without_coach_falls_back(self):
        message = describe(AssignmentState.ASSIGNED_WITH_PLAN)

        assert message.message.startswith("Your coach has prepared")

    def test_unassigned_offers_booking(self):
        message = describe(AssignmentState.UNASSIGNED)

        assert message.action_label == "Book consultation"
        assert message.icon == "calendar-outline"

    def test_unresolved_offers_retry(self):
        message = describe(None)

        assert message.title == "Status Unavailable"
        assert message.action_label == "Retry"


# ---------------------------------------------------------------------------
# request_assignment
# ---------------------------------------------------------------------------

class TestRequestAssignment:
    """Tests for replacing a client's coach."""

    def test_success_switches_coach(self, repo):
        repo.links[1] = 7

        result = request_assignment(repo, 1, 9)

        assert result.success
        assert result.error is None
        assert resolve(repo, 1).coach.id == 9

    def test_write_failure_is_reported(self, repo):
        repo.failing.add("replace_active_link")

        result = request_assignment(repo, 1, 9)

        assert not result.success
        assert "unavailable" in result.error

    def test_request_and_refresh_updates_store(self, repo):
        store = AssignmentStore(client_id=1)

        result = request_and_refresh(store, repo, 9)

        assert result.success
        assert store.state == AssignmentState.ASSIGNED_NO_PLAN
        assert store.coach.id == 9

    def test_request_without_client_fails(self, repo):
        result = request_and_refresh(AssignmentStore(), repo, 9)

        assert not result.success
        assert result.error == "client could not be identified"
        assert "replace_active_link" not in repo.calls

    def test_failed_request_keeps_previous_resolution(self, repo):
        repo.links[1] = 7
        store = AssignmentStore(client_id=1)
        refresh(store, repo)
        repo.failing.add("replace_active_link")

        result = request_and_refresh(store, repo, 9)

        assert not result.success
        assert store.coach.id == 7
