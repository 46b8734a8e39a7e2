"""
Prerequisite evaluation: an achievement only progresses once the achiever
holds a successful attempt for every prerequisite achievement type.
"""
from __future__ import annotations

from sqlalchemy.orm import Session

from achievement_engine.models.achievement_attempt import AchievementAttempt
from achievement_engine.services.records import AchievementDefinition


def get_unmet_prerequisites(
    db: Session, definition: AchievementDefinition, achiever_id: str
) -> set[int]:
    """Return the prerequisite type ids the achiever has not yet earned."""
    if not definition.prerequisite_ids:
        return set()

    earned = {
        row.achievement_type_id
        for row in (
            db.query(AchievementAttempt.achievement_type_id)
            .filter(
                AchievementAttempt.achiever_id == achiever_id,
                AchievementAttempt.achievement_type_id.in_(definition.prerequisite_ids),
                AchievementAttempt.is_successful == True,  # noqa
            )
            .distinct()
            .all()
        )
    }
    return set(definition.prerequisite_ids) - earned
