"""Integration: badge awarding idempotency, evaluation and catalog seeding."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from campus_connect.db.models import Achievement, Badge, Notification
from campus_connect.gamification.activity_tracker import reevaluate_badges
from campus_connect.gamification.badge_service import (
    AwardOutcome,
    BadgeEvaluator,
    award_badge,
    get_badge_by_slug,
    get_user_achievements,
    has_badge,
    list_badges,
)
from campus_connect.gamification.levels import compute_level
from campus_connect.gamification.metrics import Metric
from campus_connect.gamification.seed import BADGE_SEED_DATA, seed_badges
from campus_connect.gamification.stats_service import get_or_create_stats, get_stats, increment_counter


class TestAwardBadge:
    """award_badge inserts at most one achievement per (user, badge)."""

    @pytest.mark.asyncio
    async def test_second_award_is_already_earned(self, db_session, make_user):
        db = db_session
        user = await make_user()
        await get_or_create_stats(db, user.id)
        badge = await get_badge_by_slug(db, "project_pioneer")

        first = await award_badge(db, None, user.id, badge)
        await db.commit()
        second = await award_badge(db, None, user.id, badge)
        await db.commit()

        assert first.outcome is AwardOutcome.AWARDED
        assert first.awarded
        assert second.outcome is AwardOutcome.ALREADY_EARNED
        assert not second.awarded

        stats = await get_stats(db, user.id)
        assert stats.total_points == 30
        assert stats.project_score == 30
        assert await has_badge(db, user.id, badge.id)

        count = await db.execute(
            select(func.count()).select_from(Achievement).where(Achievement.user_id == user.id)
        )
        assert count.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_award_records_notification(self, db_session, make_user):
        db = db_session
        user = await make_user()
        await get_or_create_stats(db, user.id)
        badge = await get_badge_by_slug(db, "hackathon_winner")

        await award_badge(db, None, user.id, badge)
        await db.commit()

        result = await db.execute(select(Notification).where(Notification.user_id == user.id))
        titles = sorted(n.title for n in result.scalars().all())
        # 300 points moves the user from level 1 to level 4
        assert titles == ["Badge Earned: Hackathon Winner", "Level Up!"]

    @pytest.mark.asyncio
    async def test_collaboration_badge_credits_contribution_score(self, db_session, make_user):
        db = db_session
        user = await make_user()
        await get_or_create_stats(db, user.id)

        await award_badge(db, None, user.id, await get_badge_by_slug(db, "team_player"))
        await db.commit()

        stats = await get_stats(db, user.id)
        assert stats.contribution_score == 60
        assert stats.mentorship_score == 0


class TestBadgeEvaluator:
    """Evaluation over the whole catalog."""

    @pytest.mark.asyncio
    async def test_evaluation_is_idempotent(self, db_session, make_user):
        db = db_session
        user = await make_user()
        await get_or_create_stats(db, user.id)
        await increment_counter(db, user.id, "projects_created", 10)
        await db.commit()

        first = await BadgeEvaluator(db, None).evaluate(user.id)
        await db.commit()
        second = await BadgeEvaluator(db, None).evaluate(user.id)
        await db.commit()

        assert sorted(b.slug for b in first) == ["innovation_leader", "project_pioneer"]
        assert second == []

        stats = await get_stats(db, user.id)
        assert stats.total_points == 280
        assert stats.level == compute_level(stats.total_points)

    @pytest.mark.asyncio
    async def test_level_badge_follows_point_awards(self, db_session, make_user):
        """Awards that lift the level to 5 unlock Rising Star in the same evaluation."""
        db = db_session
        user = await make_user()
        await get_or_create_stats(db, user.id)
        await increment_counter(db, user.id, "hackathon_wins", 1)
        await increment_counter(db, user.id, "competition_wins", 3)
        await db.commit()

        awarded = await BadgeEvaluator(db, None).evaluate(user.id)
        await db.commit()

        assert {"hackathon_winner", "competition_champion", "rising_star"} <= {b.slug for b in awarded}
        stats = await get_stats(db, user.id)
        assert stats.total_points == 900
        assert stats.level == 10

    @pytest.mark.asyncio
    async def test_metric_filter_limits_candidates(self, db_session, make_user):
        db = db_session
        user = await make_user()
        await get_or_create_stats(db, user.id)
        await increment_counter(db, user.id, "projects_created", 1)
        await increment_counter(db, user.id, "events_attended", 1)
        await db.commit()

        awarded = await BadgeEvaluator(db, None).evaluate(user.id, metrics={Metric.EVENTS_ATTENDED})
        await db.commit()

        assert [b.slug for b in awarded] == ["event_enthusiast"]

    @pytest.mark.asyncio
    async def test_reevaluate_profile_metrics(self, db_session, make_user):
        """Skills and mentor rating live on the user row and are picked up on re-evaluation."""
        db = db_session
        user = await make_user(skills=["python", "sql", "go", "rust", "react"], mentor_rating=4.8)

        awarded = await reevaluate_badges(db, None, user.id)

        assert sorted(b.slug for b in awarded) == ["skill_collector", "top_rated_mentor"]
        stats = await get_stats(db, user.id)
        assert stats.total_points == 340
        assert stats.level == 4

    @pytest.mark.asyncio
    async def test_user_achievements_newest_first(self, db_session, make_user):
        db = db_session
        user = await make_user()
        await get_or_create_stats(db, user.id)
        for slug in ("event_enthusiast", "project_pioneer"):
            await award_badge(db, None, user.id, await get_badge_by_slug(db, slug))
            await db.commit()

        achievements = await get_user_achievements(db, user.id)
        assert [badge.slug for _achievement, badge in achievements] == ["project_pioneer", "event_enthusiast"]


class TestSeeding:
    """Catalog seeding is idempotent."""

    @pytest.mark.asyncio
    async def test_seed_twice_inserts_nothing(self, db_session):
        assert await seed_badges(db_session) == 0
        count = await db_session.execute(select(func.count()).select_from(Badge))
        assert count.scalar_one() == len(BADGE_SEED_DATA)

    @pytest.mark.asyncio
    async def test_renamed_badge_is_matched_by_slug(self, db_session):
        badge = await get_badge_by_slug(db_session, "project_pioneer")
        badge.name = "Trailblazer"
        await db_session.commit()

        assert await seed_badges(db_session) == 0

        count = await db_session.execute(select(func.count()).select_from(Badge))
        assert count.scalar_one() == len(BADGE_SEED_DATA)
        assert (await get_badge_by_slug(db_session, "project_pioneer")).name == "Trailblazer"

    @pytest.mark.asyncio
    async def test_catalog_order(self, db_session):
        badges = await list_badges(db_session)
        assert badges[0].slug == "first_mentor"
        assert [b.sort_order for b in badges] == sorted(b.sort_order for b in badges)
