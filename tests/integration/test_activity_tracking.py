"""Integration: activity -> stats -> badge -> points -> notification pipeline."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from campus_connect.database import get_session
from campus_connect.db.models import Achievement, Badge, MonthlyStats, Notification
from campus_connect.errors import NotFoundError
from campus_connect.gamification import progress_service
from campus_connect.gamification.activity_tracker import ACTIVITY_EFFECTS, ActivityKind, track_activity
from campus_connect.gamification.badge_service import BadgeEvaluator
from campus_connect.gamification.levels import compute_level
from campus_connect.gamification.stats_cache import get_stats_cache
from campus_connect.gamification.stats_service import get_stats

T0 = datetime(2030, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _earned_slugs(db, user_id: int) -> list[str]:
    result = await db.execute(
        select(Badge.slug)
        .join(Achievement, Achievement.badge_id == Badge.id)
        .where(Achievement.user_id == user_id)
        .order_by(Badge.slug)
    )
    return list(result.scalars().all())


async def _notification_count(db, user_id: int, type_: str | None = None) -> int:
    stmt = select(func.count()).select_from(Notification).where(Notification.user_id == user_id)
    if type_ is not None:
        stmt = stmt.where(Notification.type == type_)
    result = await db.execute(stmt)
    return result.scalar_one()


class TestMentorshipScenarios:
    """First Mentor on the first session, Mentor Master on the tenth."""

    @pytest.mark.asyncio
    async def test_first_session_awards_first_mentor(self, db_session, make_user):
        db = db_session
        mentor = await make_user(role="mentor")

        result = await track_activity(db, None, mentor.id, ActivityKind.MENTORSHIP_SESSION)

        assert result.stats.mentorship_sessions == 1
        assert [badge.slug for badge in result.new_badges] == ["first_mentor"]
        assert result.stats.total_points == 50
        assert result.stats.mentorship_score == 50
        assert await _earned_slugs(db, mentor.id) == ["first_mentor"]
        assert await _notification_count(db, mentor.id, "achievement") == 1
        assert await _notification_count(db, mentor.id) == 1

    @pytest.mark.asyncio
    async def test_tenth_session_awards_mentor_master_once(self, db_session, make_user):
        db = db_session
        mentor = await make_user(role="mentor")

        awarded: list[str] = []
        for _ in range(10):
            result = await track_activity(db, None, mentor.id, ActivityKind.MENTORSHIP_SESSION)
            awarded.extend(badge.slug for badge in result.new_badges)

        assert awarded == ["first_mentor", "mentor_master"]
        assert result.new_badges[0].slug == "mentor_master"
        assert result.stats.mentorship_sessions == 10
        assert result.stats.total_points == 250
        assert result.stats.level == 3
        assert await _earned_slugs(db, mentor.id) == ["first_mentor", "mentor_master"]

        level_ups = await db.execute(
            select(Notification).where(Notification.user_id == mentor.id, Notification.title == "Level Up!")
        )
        assert len(level_ups.scalars().all()) == 1


class TestCounters:
    """Counters move by exactly one per activity."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(ActivityKind))
    async def test_n_activities_increment_counter_n_times(self, db_session, make_user, kind):
        db = db_session
        user = await make_user()

        for _ in range(4):
            await track_activity(db, None, user.id, kind)

        stats = await get_stats(db, user.id)
        assert getattr(stats, ACTIVITY_EFFECTS[kind].counter) == 4

    @pytest.mark.asyncio
    async def test_other_counters_untouched(self, db_session, make_user):
        db = db_session
        user = await make_user()

        await track_activity(db, None, user.id, ActivityKind.EVENT_ATTENDED)

        stats = await get_stats(db, user.id)
        assert stats.events_attended == 1
        assert stats.projects_created == 0
        assert stats.mentorship_sessions == 0

    @pytest.mark.asyncio
    async def test_level_matches_points_after_awards(self, db_session, make_user):
        db = db_session
        user = await make_user()

        for kind in [ActivityKind.HACKATHON_WON, ActivityKind.PROJECT_CREATED, ActivityKind.EVENT_ATTENDED]:
            result = await track_activity(db, None, user.id, kind)
            assert result.stats.level == compute_level(result.stats.total_points)

        # hackathon_winner 300 + project_pioneer 30 + event_enthusiast 25
        assert result.stats.total_points == 355
        assert result.stats.level == 4


class TestMonthlyBuckets:
    """One monthly_stats row per user per calendar month."""

    @pytest.mark.asyncio
    async def test_buckets_per_month(self, db_session, make_user):
        db = db_session
        user = await make_user()

        await track_activity(db, None, user.id, ActivityKind.EVENT_ATTENDED, now=T0)
        await track_activity(db, None, user.id, ActivityKind.EVENT_ATTENDED, now=T0 + timedelta(days=1))
        await track_activity(db, None, user.id, ActivityKind.EVENT_ATTENDED, now=T0 + timedelta(days=31))

        result = await db.execute(
            select(MonthlyStats).where(MonthlyStats.user_id == user.id).order_by(MonthlyStats.month)
        )
        buckets = result.scalars().all()
        assert [(b.month, b.events) for b in buckets] == [("2030-03", 2), ("2030-04", 1)]
        # event_enthusiast was earned in March
        assert buckets[0].points == 25
        assert buckets[1].points == 0

    @pytest.mark.asyncio
    async def test_skill_endorsement_has_no_monthly_field(self, db_session, make_user):
        db = db_session
        user = await make_user()

        await track_activity(db, None, user.id, ActivityKind.SKILL_ENDORSED, now=T0)

        result = await db.execute(select(MonthlyStats).where(MonthlyStats.user_id == user.id))
        assert result.scalars().all() == []


class TestStreaks:
    """Streaks tracked through the activity pipeline."""

    @pytest.mark.asyncio
    async def test_streak_law(self, db_session, make_user):
        db = db_session
        user = await make_user()

        first = await track_activity(db, None, user.id, ActivityKind.EVENT_ATTENDED, now=T0)
        next_day = await track_activity(db, None, user.id, ActivityKind.EVENT_ATTENDED, now=T0 + timedelta(days=1))
        same_day = await track_activity(
            db, None, user.id, ActivityKind.EVENT_ATTENDED, now=T0 + timedelta(days=1, hours=2),
        )
        after_gap = await track_activity(db, None, user.id, ActivityKind.EVENT_ATTENDED, now=T0 + timedelta(days=4))

        assert first.streak.current == 1
        assert next_day.streak.current == 2
        assert same_day.streak.current == 2
        assert after_gap.streak.current == 1
        assert after_gap.stats.longest_streak == 2

    @pytest.mark.asyncio
    async def test_seven_day_streak_awards_badge_and_milestone(self, db_session, make_user):
        db = db_session
        user = await make_user()

        for day in range(7):
            result = await track_activity(
                db, None, user.id, ActivityKind.SKILL_ENDORSED, now=T0 + timedelta(days=day),
            )

        assert result.stats.current_streak == 7
        assert "consistent_contributor" in [badge.slug for badge in result.new_badges]

        milestone = await db.execute(
            select(Notification).where(Notification.user_id == user.id, Notification.title == "7-Day Streak!")
        )
        assert milestone.scalar_one().notification_metadata["milestone"] == 7


class TestFailureHandling:
    """Unknown kinds, unknown users and failing badge evaluation."""

    @pytest.mark.asyncio
    async def test_unknown_kind_is_ignored(self, db_session, make_user):
        db = db_session
        user = await make_user()

        result = await track_activity(db, None, user.id, "interpretive_dance")

        assert result.ignored is True
        assert result.stats is None
        assert await get_stats(db, user.id) is None

    @pytest.mark.asyncio
    async def test_unknown_user_raises_without_writes(self, db_session):
        with pytest.raises(NotFoundError):
            await track_activity(db_session, None, 424242, ActivityKind.PROJECT_CREATED)
        assert await get_stats(db_session, 424242) is None

    @pytest.mark.asyncio
    async def test_badge_failure_keeps_stat_update(self, db_session, make_user, monkeypatch):
        db = db_session
        user = await make_user()

        async def _boom(self, *args, **kwargs):
            raise RuntimeError("catalog unavailable")

        monkeypatch.setattr(BadgeEvaluator, "evaluate", _boom)

        user_id = user.id
        result = await track_activity(db, None, user_id, ActivityKind.PROJECT_CREATED)

        assert result.badge_evaluation_failed is True
        assert result.new_badges == []
        assert result.stats.projects_created == 1
        assert await _earned_slugs(db, user_id) == []

    @pytest.mark.asyncio
    async def test_leaderboard_failure_keeps_awards(self, db_session, make_user, monkeypatch):
        db = db_session
        user = await make_user()

        async def _boom(*args, **kwargs):
            raise RuntimeError("leaderboard store down")

        monkeypatch.setattr("campus_connect.gamification.activity_tracker.refresh_for_categories", _boom)

        result = await track_activity(db, None, user.id, ActivityKind.PROJECT_CREATED)

        assert result.leaderboard_refresh_failed is True
        assert [badge.slug for badge in result.new_badges] == ["project_pioneer"]
        assert result.stats.total_points == 30


class TestProgressCache:
    """Progress reads never leave a pre-write snapshot in the cache."""

    @pytest.mark.asyncio
    async def test_write_during_read_is_not_cached_stale(self, db_session, make_user, monkeypatch):
        user = await make_user()
        user_id = user.id
        await track_activity(db_session, None, user_id, ActivityKind.EVENT_ATTENDED, now=T0)

        original = progress_service.get_user_achievements

        async def _write_between_queries(db, uid):
            async for writer in get_session():
                await track_activity(writer, None, uid, ActivityKind.EVENT_ATTENDED, now=T0 + timedelta(hours=1))
                break
            return await original(db, uid)

        monkeypatch.setattr(progress_service, "get_user_achievements", _write_between_queries)
        stale = await progress_service.get_user_progress(db_session, user_id)
        monkeypatch.setattr(progress_service, "get_user_achievements", original)

        assert stale["stats"]["events_attended"] == 1
        assert get_stats_cache().get(user_id) is None

        async for reader in get_session():
            fresh = await progress_service.get_user_progress(reader, user_id)
            break
        assert fresh["stats"]["events_attended"] == 2
