from .achievement_type import AchievementType, AchievementKind
from .achievement_attempt import AchievementAttempt
from .activity import ActivityEnrollment, ActivityDay
from .milestone_completion import MilestoneCompletion
from .membership import Membership

__all__ = [
    "AchievementType",
    "AchievementKind",
    "AchievementAttempt",
    "ActivityEnrollment",
    "ActivityDay",
    "MilestoneCompletion",
    "Membership",
]
