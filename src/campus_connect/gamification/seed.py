"""Badge catalog seed data — 21 badges across six categories."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.db.models import Badge
from campus_connect.db.upsert import insert_if_absent
from campus_connect.gamification.metrics import Metric

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    # Mentorship
    {
        "slug": "first_mentor",
        "name": "First Mentor",
        "description": "Complete your first mentorship session",
        "icon": "\U0001f393",
        "category": "mentorship",
        "rarity": "common",
        "criteria_type": "count",
        "criteria_target": 1,
        "criteria_metric": Metric.MENTORSHIP_SESSIONS.value,
        "points": 50,
        "sort_order": 1,
    },
    {
        "slug": "mentor_master",
        "name": "Mentor Master",
        "description": "Complete 10 mentorship sessions",
        "icon": "\U0001f468\u200d\U0001f3eb",
        "category": "mentorship",
        "rarity": "rare",
        "criteria_type": "count",
        "criteria_target": 10,
        "criteria_metric": Metric.MENTORSHIP_SESSIONS.value,
        "points": 200,
        "sort_order": 2,
    },
    {
        "slug": "top_rated_mentor",
        "name": "Top Rated Mentor",
        "description": "Achieve 4.5+ average rating",
        "icon": "\u2b50",
        "category": "mentorship",
        "rarity": "epic",
        "criteria_type": "rating",
        "criteria_target": 4.5,
        "criteria_metric": Metric.MENTOR_RATING.value,
        "points": 300,
        "sort_order": 3,
    },
    # Projects
    {
        "slug": "project_pioneer",
        "name": "Project Pioneer",
        "description": "Create your first project",
        "icon": "\U0001f680",
        "category": "project",
        "rarity": "common",
        "criteria_type": "count",
        "criteria_target": 1,
        "criteria_metric": Metric.PROJECTS_CREATED.value,
        "points": 30,
        "sort_order": 4,
    },
    {
        "slug": "project_finisher",
        "name": "Project Finisher",
        "description": "Complete 5 projects",
        "icon": "\u2705",
        "category": "project",
        "rarity": "rare",
        "criteria_type": "count",
        "criteria_target": 5,
        "criteria_metric": Metric.PROJECTS_COMPLETED.value,
        "points": 150,
        "sort_order": 5,
    },
    {
        "slug": "innovation_leader",
        "name": "Innovation Leader",
        "description": "Create 10 projects",
        "icon": "\U0001f4a1",
        "category": "project",
        "rarity": "epic",
        "criteria_type": "count",
        "criteria_target": 10,
        "criteria_metric": Metric.PROJECTS_CREATED.value,
        "points": 250,
        "sort_order": 6,
    },
    # Events
    {
        "slug": "event_enthusiast",
        "name": "Event Enthusiast",
        "description": "Attend your first event",
        "icon": "\U0001f3aa",
        "category": "event",
        "rarity": "common",
        "criteria_type": "count",
        "criteria_target": 1,
        "criteria_metric": Metric.EVENTS_ATTENDED.value,
        "points": 25,
        "sort_order": 7,
    },
    {
        "slug": "hackathon_hero",
        "name": "Hackathon Hero",
        "description": "Participate in 5 hackathons",
        "icon": "\U0001f4bb",
        "category": "event",
        "rarity": "rare",
        "criteria_type": "count",
        "criteria_target": 5,
        "criteria_metric": Metric.EVENTS_ATTENDED.value,
        "points": 100,
        "sort_order": 8,
    },
    # Skills
    {
        "slug": "skill_collector",
        "name": "Skill Collector",
        "description": "Add 5 skills to your profile",
        "icon": "\U0001f6e0\ufe0f",
        "category": "skill",
        "rarity": "common",
        "criteria_type": "count",
        "criteria_target": 5,
        "criteria_metric": Metric.SKILL_COUNT.value,
        "points": 40,
        "sort_order": 9,
    },
    {
        "slug": "expert_endorser",
        "name": "Expert Endorser",
        "description": "Receive 10 skill endorsements",
        "icon": "\U0001f44d",
        "category": "skill",
        "rarity": "rare",
        "criteria_type": "count",
        "criteria_target": 10,
        "criteria_metric": Metric.SKILL_ENDORSEMENTS.value,
        "points": 120,
        "sort_order": 10,
    },
    # Collaboration
    {
        "slug": "team_player",
        "name": "Team Player",
        "description": "Join 3 project teams",
        "icon": "\U0001f91d",
        "category": "collaboration",
        "rarity": "common",
        "criteria_type": "count",
        "criteria_target": 3,
        "criteria_metric": Metric.TEAMS_JOINED.value,
        "points": 60,
        "sort_order": 11,
    },
    {
        "slug": "team_leader",
        "name": "Team Leader",
        "description": "Lead 5 successful teams",
        "icon": "\U0001f468\u200d\U0001f4bc",
        "category": "collaboration",
        "rarity": "rare",
        "criteria_type": "count",
        "criteria_target": 5,
        "criteria_metric": Metric.TEAMS_LED.value,
        "points": 150,
        "sort_order": 12,
    },
    {
        "slug": "hackathon_winner",
        "name": "Hackathon Winner",
        "description": "Win a hackathon competition",
        "icon": "\U0001f3c6",
        "category": "collaboration",
        "rarity": "epic",
        "criteria_type": "count",
        "criteria_target": 1,
        "criteria_metric": Metric.HACKATHON_WINS.value,
        "points": 300,
        "sort_order": 13,
    },
    {
        "slug": "competition_champion",
        "name": "Competition Champion",
        "description": "Win 3 competitions",
        "icon": "\U0001f947",
        "category": "collaboration",
        "rarity": "legendary",
        "criteria_type": "count",
        "criteria_target": 3,
        "criteria_metric": Metric.COMPETITION_WINS.value,
        "points": 500,
        "sort_order": 14,
    },
    {
        "slug": "community_builder",
        "name": "Community Builder",
        "description": "Help 20 students through mentorship",
        "icon": "\U0001f3d7\ufe0f",
        "category": "collaboration",
        "rarity": "legendary",
        "criteria_type": "count",
        "criteria_target": 20,
        "criteria_metric": Metric.STUDENTS_HELPED.value,
        "points": 500,
        "sort_order": 15,
    },
    {
        "slug": "perfect_teammate",
        "name": "Perfect Teammate",
        "description": "Receive 5-star team ratings 10 times",
        "icon": "\u2b50",
        "category": "collaboration",
        "rarity": "epic",
        "criteria_type": "count",
        "criteria_target": 10,
        "criteria_metric": Metric.PERFECT_TEAM_RATINGS.value,
        "points": 250,
        "sort_order": 16,
    },
    # Milestones & streaks
    {
        "slug": "rising_star",
        "name": "Rising Star",
        "description": "Reach level 5",
        "icon": "\U0001f31f",
        "category": "achievement",
        "rarity": "rare",
        "criteria_type": "milestone",
        "criteria_target": 5,
        "criteria_metric": Metric.LEVEL.value,
        "points": 100,
        "sort_order": 17,
    },
    {
        "slug": "campus_legend",
        "name": "Campus Legend",
        "description": "Reach level 20",
        "icon": "\U0001f451",
        "category": "achievement",
        "rarity": "legendary",
        "criteria_type": "milestone",
        "criteria_target": 20,
        "criteria_metric": Metric.LEVEL.value,
        "points": 1000,
        "sort_order": 18,
    },
    {
        "slug": "consistent_contributor",
        "name": "Consistent Contributor",
        "description": "Maintain a 7-day activity streak",
        "icon": "\U0001f525",
        "category": "achievement",
        "rarity": "rare",
        "criteria_type": "streak",
        "criteria_target": 7,
        "criteria_metric": Metric.CURRENT_STREAK.value,
        "points": 150,
        "sort_order": 19,
    },
    {
        "slug": "dedication_master",
        "name": "Dedication Master",
        "description": "Maintain a 30-day activity streak",
        "icon": "\U0001f4aa",
        "category": "achievement",
        "rarity": "epic",
        "criteria_type": "streak",
        "criteria_target": 30,
        "criteria_metric": Metric.CURRENT_STREAK.value,
        "points": 400,
        "sort_order": 20,
    },
    {
        "slug": "unstoppable_force",
        "name": "Unstoppable Force",
        "description": "Maintain a 100-day activity streak",
        "icon": "\u26a1",
        "category": "achievement",
        "rarity": "legendary",
        "criteria_type": "streak",
        "criteria_target": 100,
        "criteria_metric": Metric.CURRENT_STREAK.value,
        "points": 1500,
        "sort_order": 21,
    },
]


async def seed_badges(db: AsyncSession) -> int:
    """Insert any catalog badges that are missing. Returns how many were inserted.

    Existing rows are left untouched, so running this on every startup
    (or from several processes at once) never duplicates a badge.
    """
    inserted = 0
    for badge_data in BADGE_SEED_DATA:
        if await insert_if_absent(db, Badge.__table__, badge_data, index_elements=["slug"]):
            inserted += 1

    await db.commit()
    logger.info("Seeded %d badge definitions (%d already present)", inserted, len(BADGE_SEED_DATA) - inserted)
    return inserted
