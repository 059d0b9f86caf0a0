"""Plot lifecycle service: creation, duplicates, scoping, status and assignment."""

import pytest
from sqlalchemy import select

from demarcation.errors import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from demarcation.models import DemarcationLog, PlotAssignment, Village
from demarcation.permissions import Role
from demarcation.services import logs, plots
from demarcation.services.scoping import PlotFilters, Scope, list_plots


def _request(village, plot_number="MAH-2024-777", **extra):
    data = {
        "plot_number": plot_number,
        "village_id": village.id,
        "area": 2.5,
        "request_type": "new_demarcation",
    }
    data.update(extra)
    return data


# ═══════════════════════════════════════════════════
# Creation + duplicates
# ═══════════════════════════════════════════════════

class TestCreatePlot:

    async def test_citizen_request_is_pending_and_owned(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul))

        assert plot.current_status == "pending"
        assert plot.is_duplicate is False
        assert plot.owner_id == world.citizen.id
        assert plot.owner_name == "Asha Devi"
        assert plot.circle_id == world.narnaul_circle.id
        assert plot.reference.startswith("DM-")

        history = await logs.list_logs(session, Scope.for_user(world.citizen), plot.id)
        assert [(h.activity_type, h.status) for h in history] == [("request_submitted", "pending")]

    async def test_duplicates_flag_against_the_first_plot(self, session, world):
        first = await plots.create_plot(session, world.citizen, _request(world.narnaul))
        second = await plots.create_plot(session, world.other_citizen, _request(world.narnaul))
        third = await plots.create_plot(session, world.citizen, _request(world.narnaul))

        assert first.is_duplicate is False
        assert second.is_duplicate is True
        assert second.duplicate_of_id == first.id
        assert third.duplicate_of_id == first.id
        assert len({first.reference, second.reference, third.reference}) == 3

    async def test_same_number_in_another_village_is_not_a_duplicate(self, session, world):
        await plots.create_plot(session, world.citizen, _request(world.narnaul))
        other = await plots.create_plot(session, world.citizen, _request(world.nangal))
        assert other.is_duplicate is False

    async def test_missing_fields(self, session, world):
        with pytest.raises(ValidationError) as exc:
            await plots.create_plot(session, world.citizen, {"village_id": world.narnaul.id})
        assert "plot_number" in exc.value.message
        assert "area" in exc.value.message

    async def test_area_must_be_positive(self, session, world):
        with pytest.raises(ValidationError):
            await plots.create_plot(session, world.citizen, _request(world.narnaul, area=0))

    async def test_unknown_village(self, session, world):
        data = _request(world.narnaul)
        data["village_id"] = 9999
        with pytest.raises(ValidationError):
            await plots.create_plot(session, world.citizen, data)

    async def test_citizen_cannot_file_for_someone_else(self, session, world):
        with pytest.raises(AuthorizationError):
            await plots.create_plot(
                session, world.citizen, _request(world.narnaul, owner_id=world.other_citizen.id)
            )

    async def test_officer_limited_to_own_circle(self, session, world):
        with pytest.raises(AuthorizationError):
            await plots.create_plot(session, world.officer, _request(world.rewari))
        plot = await plots.create_plot(session, world.officer, _request(world.nangal, owner_name="Walk-in"))
        assert plot.owner_id is None
        assert plot.circle_id == world.narnaul_circle.id


# ═══════════════════════════════════════════════════
# Scoping
# ═══════════════════════════════════════════════════

class TestScoping:

    async def test_citizen_sees_only_own_plots(self, session, world):
        mine = await plots.create_plot(session, world.citizen, _request(world.narnaul, "A-1"))
        theirs = await plots.create_plot(session, world.other_citizen, _request(world.narnaul, "A-2"))

        scope = Scope.for_user(world.citizen)
        assert [p.id for p in await list_plots(session, scope)] == [mine.id]
        assert (await plots.get_plot(session, scope, mine.id)).id == mine.id
        with pytest.raises(NotFoundError):
            await plots.get_plot(session, scope, theirs.id)

    async def test_officer_pinned_to_circle_even_when_asking_for_another(self, session, world):
        await plots.create_plot(session, world.citizen, _request(world.narnaul, "N-1"))
        await plots.create_plot(session, world.citizen, _request(world.nangal, "N-2"))
        await plots.create_plot(session, world.citizen, _request(world.rewari, "R-1"))

        scope = Scope.for_user(world.officer)
        found = await list_plots(session, scope, PlotFilters(circle_id=world.rewari_circle.id))
        assert len(found) == 2
        assert {p.circle_id for p in found} == {world.narnaul_circle.id}

    async def test_officer_without_circle_sees_nothing(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul, "Z-1"))
        scope = Scope(role=Role.OFFICER, user_id=world.idle_officer.id, circle_id=None)

        assert await list_plots(session, scope) == []
        assert await list_plots(session, scope, PlotFilters(circle_id=world.narnaul_circle.id)) == []
        with pytest.raises(NotFoundError):
            await plots.get_plot(session, scope, plot.id)

    async def test_supervisor_can_filter_by_circle(self, session, world):
        await plots.create_plot(session, world.citizen, _request(world.narnaul, "N-1"))
        await plots.create_plot(session, world.citizen, _request(world.rewari, "R-1"))

        scope = Scope.for_user(world.supervisor)
        assert len(await list_plots(session, scope)) == 2
        found = await list_plots(session, scope, PlotFilters(circle_id=world.rewari_circle.id))
        assert [p.plot_number for p in found] == ["R-1"]

    async def test_search_matches_number_or_reference(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul, "KH-55"))
        await plots.create_plot(session, world.citizen, _request(world.narnaul, "KH-99"))
        scope = Scope.for_user(world.admin)

        assert [p.id for p in await list_plots(session, scope, PlotFilters(search="55"))] == [plot.id]
        by_ref = await list_plots(session, scope, PlotFilters(search=plot.reference.lower()))
        assert [p.id for p in by_ref] == [plot.id]

    async def test_newest_update_first(self, session, world):
        older = await plots.create_plot(session, world.citizen, _request(world.narnaul, "O-1"))
        newer = await plots.create_plot(session, world.citizen, _request(world.narnaul, "O-2"))
        await plots.update_status(session, world.supervisor, older.id, "in_progress")

        ids = [p.id for p in await list_plots(session, Scope.for_user(world.admin))]
        assert ids == [older.id, newer.id]


# ═══════════════════════════════════════════════════
# Status + assignment
# ═══════════════════════════════════════════════════

class TestStatusUpdates:

    async def test_supervisor_completes_on_hold_plot_then_it_is_terminal(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul))
        await plots.update_status(session, world.supervisor, plot.id, "in_progress")
        await plots.update_status(session, world.supervisor, plot.id, "on_hold")

        plot_id = plot.id

        done = await plots.update_status(session, world.supervisor, plot_id, "completed", "Boundary fixed")
        assert done.current_status == "completed"
        assert await logs.latest_status(session, plot_id) == "completed"

        with pytest.raises(InvalidTransitionError):
            await plots.update_status(session, world.supervisor, plot_id, "in_progress")
        assert (await plots.get_plot(session, Scope.for_user(world.admin), plot_id)).current_status == "completed"

    async def test_officer_must_be_assigned(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul))
        with pytest.raises(AuthorizationError):
            await plots.update_status(session, world.officer, plot.id, "in_progress")

    async def test_officer_cannot_see_other_circle(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.rewari))
        with pytest.raises(NotFoundError):
            await plots.update_status(session, world.officer, plot.id, "in_progress")

    async def test_rejected_transition_leaves_no_log(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul))
        plot_id = plot.id
        with pytest.raises(InvalidTransitionError):
            await plots.update_status(session, world.supervisor, plot_id, "completed")

        rows = (await session.execute(
            select(DemarcationLog).where(DemarcationLog.plot_id == plot_id)
        )).scalars().all()
        assert len(rows) == 1

    async def test_citizen_cannot_update(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul))
        with pytest.raises(AuthorizationError):
            await plots.update_status(session, world.citizen, plot.id, "in_progress")


class TestAssignment:

    async def test_assignment_moves_pending_plot_to_in_progress(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul))
        assignment = await plots.assign_officer(session, world.supervisor, plot.id, world.officer.id, "Visit Monday")

        assert assignment.is_active is True
        assert plot.assigned_officer_id == world.officer.id
        assert plot.current_status == "in_progress"

        assigned = await plots.list_assigned_plots(session, world.officer)
        assert [p.id for p in assigned] == [plot.id]

        # the assigned officer can now act
        await plots.update_status(session, world.officer, plot.id, "completed")
        assert plot.current_status == "completed"

    async def test_reassignment_deactivates_previous(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul))
        await plots.assign_officer(session, world.supervisor, plot.id, world.officer.id)
        await plots.assign_officer(session, world.admin, plot.id, world.idle_officer.id)

        rows = (await session.execute(
            select(PlotAssignment).where(PlotAssignment.plot_id == plot.id).order_by(PlotAssignment.id)
        )).scalars().all()
        assert [(r.officer_id, r.is_active) for r in rows] == [
            (world.officer.id, False),
            (world.idle_officer.id, True),
        ]
        assert await plots.list_assigned_plots(session, world.officer) == []

    async def test_officer_cannot_assign(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul))
        with pytest.raises(AuthorizationError):
            await plots.assign_officer(session, world.officer, plot.id, world.idle_officer.id)

    async def test_officer_must_belong_to_plot_circle(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul))
        with pytest.raises(ValidationError):
            await plots.assign_officer(session, world.supervisor, plot.id, world.rewari_officer.id)

    async def test_only_officers_can_be_assigned(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul))
        with pytest.raises(ValidationError):
            await plots.assign_officer(session, world.supervisor, plot.id, world.citizen.id)

    async def test_terminal_plot_cannot_be_assigned(self, session, world):
        plot = await plots.create_plot(session, world.citizen, _request(world.narnaul))
        await plots.update_status(session, world.supervisor, plot.id, "rejected")
        with pytest.raises(ConflictError):
            await plots.assign_officer(session, world.supervisor, plot.id, world.officer.id)


# ═══════════════════════════════════════════════════
# Map
# ═══════════════════════════════════════════════════

class TestMapLocations:

    async def _plots(self, session, world):
        nangal = await session.get(Village, world.nangal.id)
        nangal.latitude, nangal.longitude = 28.1, 76.2
        await session.commit()

        return {
            "mine": await plots.create_plot(
                session, world.citizen, _request(world.narnaul, "M-1", latitude=28.05, longitude=76.1)
            ),
            "theirs": await plots.create_plot(
                session, world.other_citizen, _request(world.narnaul, "M-2", latitude=28.06, longitude=76.11)
            ),
            "village_only": await plots.create_plot(session, world.citizen, _request(world.nangal, "M-3")),
            "nowhere": await plots.create_plot(session, world.citizen, _request(world.rewari, "M-4")),
        }

    async def test_citizen_sees_own_markers(self, session, world):
        made = await self._plots(session, world)
        markers = await plots.list_map_locations(session, Scope.for_user(world.citizen))

        by_id = {m["id"]: m for m in markers}
        assert set(by_id) == {made["mine"].id, made["village_only"].id}
        assert by_id[made["mine"].id]["approximate"] is False
        assert by_id[made["mine"].id]["status"] == "pending"
        assert (by_id[made["village_only"].id]["latitude"], by_id[made["village_only"].id]["approximate"]) == (28.1, True)

    async def test_officer_markers_stay_in_circle(self, session, world):
        made = await self._plots(session, world)
        markers = await plots.list_map_locations(session, Scope.for_user(world.officer))
        assert {m["id"] for m in markers} == {made["mine"].id, made["theirs"].id, made["village_only"].id}

        other_circle = await plots.list_map_locations(session, Scope.for_user(world.rewari_officer))
        assert other_circle == []

    async def test_status_filter(self, session, world):
        made = await self._plots(session, world)
        await plots.update_status(session, world.supervisor, made["theirs"].id, "in_progress")

        markers = await plots.list_map_locations(
            session, Scope.for_user(world.admin), PlotFilters(status="in_progress")
        )
        assert [(m["id"], m["status"]) for m in markers] == [(made["theirs"].id, "in_progress")]
