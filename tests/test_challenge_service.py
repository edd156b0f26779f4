"""Tests for the request-facing challenge operations."""

from datetime import timedelta

import pytest

from factories import run
from pace_duel.db import ChallengeRepository, DailyProgressRepository
from pace_duel.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from pace_duel.models.challenge import ChallengeStatus, SportType
from pace_duel.models.progress import DailyProgress
from pace_duel.models.user import NotificationKind
from pace_duel.services.challenges import INVITE_ALPHABET
from pace_duel.services.scheduler import run_daily_status_sweep

RUN = SportType.RUN
RIDE = SportType.RIDE


class TestCreateChallenge:
    """Tests for creating challenges."""

    @pytest.mark.asyncio
    async def test_create_pending_with_creator(self, service, users, today):
        view = await service.create_challenge(
            users["alice"].id, "Spring 10k", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )

        c = view.challenge
        assert c.status == ChallengeStatus.PENDING
        assert c.name == "Spring 10k"
        assert c.sport_types == {RUN}
        assert len(c.invite_code) == 8
        assert set(c.invite_code) <= set(INVITE_ALPHABET)
        assert [p.user_id for p in view.participants] == [users["alice"].id]

    @pytest.mark.asyncio
    async def test_start_today_allowed(self, service, users, today):
        view = await service.create_challenge(
            users["alice"].id, None, today, today + timedelta(days=1), {RUN: 5}
        )
        assert view.challenge.name == "Challenge"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "start_offset,end_offset,goals,field",
        [
            (-1, 5, {RUN: 10}, "start_date"),
            (1, 1, {RUN: 10}, "end_date"),
            (3, 1, {RUN: 10}, "end_date"),
            (1, 5, {}, "goals"),
            (1, 5, {RUN: 0}, "goals"),
            (1, 5, {RUN: 10, RIDE: -5}, "goals"),
        ],
    )
    async def test_validation(self, service, users, today, start_offset, end_offset, goals, field):
        with pytest.raises(ValidationError) as exc:
            await service.create_challenge(
                users["alice"].id,
                "x",
                today + timedelta(days=start_offset),
                today + timedelta(days=end_offset),
                goals,
            )
        assert exc.value.details["field"] == field

    @pytest.mark.asyncio
    async def test_unknown_timezone(self, service, users, today):
        with pytest.raises(ValidationError):
            await service.create_challenge(
                users["alice"].id, "x", today + timedelta(days=1), today + timedelta(days=5),
                {RUN: 10}, timezone="Mars/Olympus_Mons",
            )

    @pytest.mark.asyncio
    async def test_timezone_stored_on_creator(self, service, users, today, db_path):
        view = await service.create_challenge(
            users["alice"].id, "x", today + timedelta(days=2), today + timedelta(days=5),
            {RUN: 10}, timezone="Asia/Tokyo",
        )
        stored = await ChallengeRepository(db_path).get(view.challenge.id)
        assert stored.creator_timezone == "Asia/Tokyo"

    @pytest.mark.asyncio
    async def test_unknown_creator(self, service, today):
        with pytest.raises(NotFoundError):
            await service.create_challenge(
                999, "x", today + timedelta(days=1), today + timedelta(days=5), {RUN: 10}
            )


class TestJoinChallenge:
    """Tests for joining by invite code."""

    @pytest.mark.asyncio
    async def test_join_before_start_then_sweep_starts(self, service, users, sink, today, db_path):
        created = await service.create_challenge(
            users["alice"].id, "Duel", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )

        view = await service.join_challenge(users["bob"].id, created.challenge.invite_code, {RUN: 60})

        assert view.challenge.status == ChallengeStatus.SCHEDULED
        assert len(view.participants) == 2
        assert sink.kinds_for(users["alice"].id) == [NotificationKind.OPPONENT_JOINED]

        await run_daily_status_sweep(today=today + timedelta(days=1), db_path=db_path, sink=sink)
        stored = await ChallengeRepository(db_path).get(view.challenge.id)
        assert stored.status == ChallengeStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_join_after_start_activates_and_syncs(self, service, users, sink, source, today):
        source.add(users["bob"].id, run(6000, today, "b1"))
        created = await service.create_challenge(
            users["alice"].id, "Duel", today, today + timedelta(days=8), {RUN: 50}
        )

        view = await service.join_challenge(users["bob"].id, created.challenge.invite_code, {RUN: 60})

        assert view.challenge.status == ChallengeStatus.ACTIVE
        assert sink.kinds_for(users["alice"].id) == [
            NotificationKind.OPPONENT_JOINED,
            NotificationKind.CHALLENGE_STARTED,
        ]
        assert sink.kinds_for(users["bob"].id) == [NotificationKind.CHALLENGE_STARTED]
        assert [call[0] for call in source.calls] == [users["bob"].id]

        progress = await service.get_progress(view.challenge.id)
        bob = next(p for p in progress.participants if p.user_id == users["bob"].id)
        assert bob.breakdown.overall_percent == 10

    @pytest.mark.asyncio
    async def test_invite_code_is_case_insensitive(self, service, users, today):
        created = await service.create_challenge(
            users["alice"].id, "Duel", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )
        code = created.challenge.invite_code.lower()
        view = await service.join_challenge(users["bob"].id, f" {code} ", {RUN: 10})
        assert len(view.participants) == 2

    @pytest.mark.asyncio
    async def test_sport_set_is_union_of_goals(self, service, users, today):
        created = await service.create_challenge(
            users["alice"].id, "Duel", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )
        view = await service.join_challenge(
            users["bob"].id, created.challenge.invite_code, {RIDE: 200, RUN: 10}
        )
        assert view.challenge.sport_types == {RUN, RIDE}

    @pytest.mark.asyncio
    async def test_unknown_code(self, service, users):
        with pytest.raises(NotFoundError):
            await service.join_challenge(users["bob"].id, "ZZZZZZZZ", {RUN: 10})

    @pytest.mark.asyncio
    async def test_cannot_join_own_challenge(self, service, users, today):
        created = await service.create_challenge(
            users["alice"].id, "Duel", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )
        with pytest.raises(ConflictError):
            await service.join_challenge(users["alice"].id, created.challenge.invite_code, {RUN: 10})

    @pytest.mark.asyncio
    async def test_third_participant_rejected(self, service, users, today):
        created = await service.create_challenge(
            users["alice"].id, "Duel", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )
        await service.join_challenge(users["bob"].id, created.challenge.invite_code, {RUN: 10})

        with pytest.raises(ConflictError):
            await service.join_challenge(users["carol"].id, created.challenge.invite_code, {RUN: 10})

    @pytest.mark.asyncio
    async def test_invalid_goals(self, service, users, today):
        created = await service.create_challenge(
            users["alice"].id, "Duel", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )
        with pytest.raises(ValidationError):
            await service.join_challenge(users["bob"].id, created.challenge.invite_code, {})

    @pytest.mark.asyncio
    async def test_expired_challenge_cannot_be_joined(self, service, users, make_challenge, today, sink):
        c = await make_challenge(users["alice"], today - timedelta(days=9), today - timedelta(days=1))

        with pytest.raises(ConflictError):
            await service.join_challenge(users["bob"].id, c.invite_code, {RUN: 10})
        assert sink.kinds_for(users["alice"].id) == [NotificationKind.CHALLENGE_EXPIRED]


class TestLeaveAndFinish:
    """Tests for leaving, forfeiting and finishing early."""

    @pytest.mark.asyncio
    async def test_leave_scheduled_reverts_to_pending(self, service, users, today):
        created = await service.create_challenge(
            users["alice"].id, "Duel", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )
        code = created.challenge.invite_code
        await service.join_challenge(users["bob"].id, code, {RIDE: 100})

        view = await service.leave_challenge(created.challenge.id, users["bob"].id)

        assert view.challenge.status == ChallengeStatus.PENDING
        assert view.challenge.sport_types == {RUN}
        assert [p.user_id for p in view.participants] == [users["alice"].id]

        # Open again for someone else
        rejoined = await service.join_challenge(users["carol"].id, code, {RUN: 5})
        assert rejoined.challenge.status == ChallengeStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_creator_cannot_leave(self, service, users, today):
        created = await service.create_challenge(
            users["alice"].id, "Duel", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )
        with pytest.raises(ConflictError):
            await service.leave_challenge(created.challenge.id, users["alice"].id)

        await service.join_challenge(users["bob"].id, created.challenge.invite_code, {RUN: 5})
        with pytest.raises(ConflictError):
            await service.leave_challenge(created.challenge.id, users["alice"].id)

    @pytest.mark.asyncio
    async def test_non_participant_cannot_leave(self, service, users, today):
        created = await service.create_challenge(
            users["alice"].id, "Duel", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )
        with pytest.raises(NotFoundError):
            await service.leave_challenge(created.challenge.id, users["carol"].id)

    @pytest.mark.asyncio
    async def test_forfeit_then_finish_early(self, service, users, sink, make_challenge, today, db_path):
        c = await make_challenge(
            users["alice"], today - timedelta(days=3), today + timedelta(days=10),
            status=ChallengeStatus.ACTIVE, opponent=users["bob"],
        )
        progress = DailyProgressRepository(db_path)
        await progress.upsert(DailyProgress(c.id, users["alice"].id, today, progress_percent=5))
        await progress.upsert(DailyProgress(c.id, users["bob"].id, today, progress_percent=95))

        left = await service.leave_challenge(c.id, users["bob"].id)
        assert left.challenge.status == ChallengeStatus.ACTIVE
        assert sink.kinds_for(users["alice"].id) == [NotificationKind.OPPONENT_FORFEITED]

        with pytest.raises(ConflictError):
            await service.leave_challenge(c.id, users["bob"].id)

        view = await service.finish_challenge(c.id, users["alice"].id)

        assert view.challenge.status == ChallengeStatus.COMPLETED
        assert view.challenge.winner_id == users["alice"].id
        assert sink.kinds_for(users["alice"].id)[-1] == NotificationKind.CHALLENGE_WON
        # The forfeiting participant hears nothing about the result
        assert sink.kinds_for(users["bob"].id) == []

    @pytest.mark.asyncio
    async def test_finish_requires_forfeited_opponent(self, service, users, make_challenge, today):
        c = await make_challenge(
            users["alice"], today - timedelta(days=3), today + timedelta(days=10),
            status=ChallengeStatus.ACTIVE, opponent=users["bob"],
        )
        with pytest.raises(ConflictError):
            await service.finish_challenge(c.id, users["alice"].id)

    @pytest.mark.asyncio
    async def test_forfeited_participant_cannot_finish(self, service, users, make_challenge, today):
        c = await make_challenge(
            users["alice"], today - timedelta(days=3), today + timedelta(days=10),
            status=ChallengeStatus.ACTIVE, opponent=users["bob"],
        )
        await service.leave_challenge(c.id, users["bob"].id)
        with pytest.raises(ConflictError):
            await service.finish_challenge(c.id, users["bob"].id)

    @pytest.mark.asyncio
    async def test_both_forfeit_cancels(self, service, users, make_challenge, today):
        c = await make_challenge(
            users["alice"], today - timedelta(days=3), today + timedelta(days=10),
            status=ChallengeStatus.ACTIVE, opponent=users["bob"],
        )
        await service.leave_challenge(c.id, users["bob"].id)
        view = await service.leave_challenge(c.id, users["alice"].id)

        assert view.challenge.status == ChallengeStatus.CANCELLED
        assert view.challenge.winner_id is None


class TestDeleteChallenge:
    """Tests for deleting challenges."""

    @pytest.mark.asyncio
    async def test_creator_deletes_pending(self, service, users, today):
        created = await service.create_challenge(
            users["alice"].id, "Duel", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )
        await service.delete_challenge(created.challenge.id, users["alice"].id)

        with pytest.raises(NotFoundError):
            await service.get_challenge(created.challenge.id)

    @pytest.mark.asyncio
    async def test_only_creator_can_delete(self, service, users, today):
        created = await service.create_challenge(
            users["alice"].id, "Duel", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )
        with pytest.raises(PermissionDeniedError):
            await service.delete_challenge(created.challenge.id, users["bob"].id)

    @pytest.mark.asyncio
    async def test_active_cannot_be_deleted(self, service, users, make_challenge, today):
        c = await make_challenge(
            users["alice"], today - timedelta(days=3), today + timedelta(days=10),
            status=ChallengeStatus.ACTIVE, opponent=users["bob"],
        )
        with pytest.raises(ConflictError):
            await service.delete_challenge(c.id, users["alice"].id)


class TestRenameChallenge:
    """Tests for renaming challenges."""

    @pytest.mark.asyncio
    async def test_creator_renames(self, service, users, make_challenge, today, db_path):
        c = await make_challenge(
            users["alice"], today - timedelta(days=3), today + timedelta(days=10),
            status=ChallengeStatus.ACTIVE, opponent=users["bob"],
        )

        view = await service.update_challenge(c.id, users["alice"].id, name="  June miles ")

        assert view.challenge.name == "June miles"
        assert view.challenge.status == ChallengeStatus.ACTIVE
        assert (await ChallengeRepository(db_path).get(c.id)).name == "June miles"

    @pytest.mark.asyncio
    async def test_only_creator_can_rename(self, service, users, make_challenge, today, db_path):
        c = await make_challenge(
            users["alice"], today + timedelta(days=1), today + timedelta(days=8),
            opponent=users["bob"],
        )
        with pytest.raises(PermissionDeniedError):
            await service.update_challenge(c.id, users["bob"].id, name="Bob's now")
        assert (await ChallengeRepository(db_path).get(c.id)).name == "Test Duel"

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, service, users, make_challenge, today):
        c = await make_challenge(users["alice"], today + timedelta(days=1), today + timedelta(days=8))
        with pytest.raises(ValidationError) as exc:
            await service.update_challenge(c.id, users["alice"].id, name="   ")
        assert exc.value.details["field"] == "name"

    @pytest.mark.asyncio
    async def test_no_name_leaves_it_alone(self, service, users, make_challenge, today):
        c = await make_challenge(users["alice"], today + timedelta(days=1), today + timedelta(days=8))
        view = await service.update_challenge(c.id, users["alice"].id)
        assert view.challenge.name == "Test Duel"

    @pytest.mark.asyncio
    async def test_missing_challenge(self, service, users):
        with pytest.raises(NotFoundError):
            await service.update_challenge(9999, users["alice"].id, name="x")


class TestQueries:
    """Tests for reads with lazy status checks."""

    @pytest.mark.asyncio
    async def test_read_applies_due_transition(self, service, users, sink, make_challenge, today):
        c = await make_challenge(users["alice"], today - timedelta(days=9), today - timedelta(days=1))

        first = await service.get_challenge(c.id)
        second = await service.get_challenge(c.id)

        assert first.challenge.status == ChallengeStatus.EXPIRED
        assert second.challenge.status == ChallengeStatus.EXPIRED
        assert len(sink.sent) == 1

    @pytest.mark.asyncio
    async def test_get_with_sync_refreshes_progress(self, service, users, source, make_challenge, today):
        c = await make_challenge(
            users["alice"], today - timedelta(days=3), today + timedelta(days=10),
            status=ChallengeStatus.ACTIVE, opponent=users["bob"],
        )
        source.add(users["alice"].id, run(25000, today - timedelta(days=1), "a1"))

        await service.get_challenge(c.id, sync=True)
        progress = await service.get_progress(c.id)

        alice = next(p for p in progress.participants if p.user_id == users["alice"].id)
        assert alice.breakdown.distances[RUN] == 25000
        assert alice.breakdown.sport_percents[RUN] == 50
        assert progress.seconds_remaining > 0

    @pytest.mark.asyncio
    async def test_sync_and_progress_pulls_only_acting_user(
        self, service, users, source, make_challenge, today
    ):
        c = await make_challenge(
            users["alice"], today - timedelta(days=3), today + timedelta(days=10),
            status=ChallengeStatus.ACTIVE, opponent=users["bob"],
        )
        source.add(users["alice"].id, run(25000, today - timedelta(days=1), "a1"))
        source.add(users["bob"].id, run(30000, today - timedelta(days=1), "b1"))

        progress = await service.sync_and_get_progress(c.id, users["alice"].id)

        by_user = {p.user_id: p for p in progress.participants}
        assert by_user[users["alice"].id].breakdown.distances[RUN] == 25000
        assert by_user[users["bob"].id].breakdown.distances.get(RUN, 0) == 0
        assert {user_id for user_id, _, _ in source.calls} == {users["alice"].id}

    @pytest.mark.asyncio
    async def test_sync_and_progress_skips_fetch_before_start(
        self, service, users, source, make_challenge, today
    ):
        c = await make_challenge(
            users["alice"], today + timedelta(days=2), today + timedelta(days=10),
            status=ChallengeStatus.SCHEDULED, opponent=users["bob"],
        )

        progress = await service.sync_and_get_progress(c.id, users["alice"].id)

        assert progress.status == ChallengeStatus.SCHEDULED
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_progress_of_finished_challenge(self, service, users, make_challenge, today):
        c = await make_challenge(
            users["alice"], today - timedelta(days=9), today - timedelta(days=1),
            status=ChallengeStatus.ACTIVE, opponent=users["bob"],
        )
        progress = await service.get_progress(c.id)
        assert progress.status == ChallengeStatus.COMPLETED
        assert progress.seconds_remaining == 0

    @pytest.mark.asyncio
    async def test_list_user_challenges(self, service, users, make_challenge, today):
        expired = await make_challenge(users["alice"], today - timedelta(days=9), today - timedelta(days=1))
        upcoming = await service.create_challenge(
            users["alice"].id, "Next", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )

        all_views = await service.list_user_challenges(users["alice"].id)
        pending = await service.list_user_challenges(users["alice"].id, ChallengeStatus.PENDING)

        assert {v.challenge.id for v in all_views} == {expired.id, upcoming.challenge.id}
        assert [v.challenge.id for v in pending] == [upcoming.challenge.id]
        assert await service.list_user_challenges(users["bob"].id) == []

    @pytest.mark.asyncio
    async def test_preview_by_invite_code(self, service, users, today):
        created = await service.create_challenge(
            users["alice"].id, "Duel", today + timedelta(days=1), today + timedelta(days=8), {RUN: 50}
        )
        view = await service.get_challenge_by_invite_code(created.challenge.invite_code)
        assert view.challenge.id == created.challenge.id

        with pytest.raises(NotFoundError):
            await service.get_challenge_by_invite_code("NOPE2345")
