"""Impact achievements earned from donation, volunteering and review totals."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class Metric(str, Enum):
    DONATED = "total_donated"
    HOURS = "total_volunteer_hours"
    REVIEWS = "total_reviews"


class AchievementStatus(str, Enum):
    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    LOCKED = "locked"


@dataclass(frozen=True)
class Achievement:
    """A badge unlocked when a metric reaches its threshold.

    A threshold of 0 means any positive total unlocks it.
    """
    id: str
    title: str
    description: str
    icon: str
    metric: Metric
    threshold: float


@dataclass(frozen=True)
class ImpactStats:
    total_donated: float = 0.0
    total_volunteer_hours: float = 0.0
    total_reviews: int = 0

    def value(self, metric: Metric) -> float:
        return float(getattr(self, metric.value))


@dataclass(frozen=True)
class AchievementProgress:
    achievement: Achievement
    current: float
    progress: float
    status: AchievementStatus

    @property
    def completed(self) -> bool:
        return self.status is AchievementStatus.COMPLETED


ACHIEVEMENTS = (
    Achievement("first_donation", "First Step", "Made your first donation",
                "💝", Metric.DONATED, 0),
    Achievement("helper", "Helper", "Donated $25 or more",
                "🤝", Metric.DONATED, 25),
    Achievement("generous_giver", "Generous Giver", "Donated $100 or more",
                "💎", Metric.DONATED, 100),
    Achievement("philanthropist", "Philanthropist", "Donated $1000 or more",
                "🏆", Metric.DONATED, 1000),
    Achievement("volunteer_starter", "Volunteer Starter", "Completed 5 hours of volunteering",
                "⭐", Metric.HOURS, 5),
    Achievement("dedicated_volunteer", "Dedicated Volunteer", "Completed 25 hours of volunteering",
                "🌟", Metric.HOURS, 25),
    Achievement("volunteer_champion", "Volunteer Champion", "Completed 100 hours of volunteering",
                "🏅", Metric.HOURS, 100),
    Achievement("reviewer", "Community Reviewer", "Left 5 helpful reviews",
                "📝", Metric.REVIEWS, 5),
)


def _progress(current: float, threshold: float) -> float:
    if current <= 0:
        return 0.0
    if threshold <= 0:
        return 100.0
    return min(current / threshold * 100, 100.0)


def evaluate(achievement: Achievement, stats: ImpactStats) -> AchievementProgress:
    current = stats.value(achievement.metric)
    progress = _progress(current, achievement.threshold)
    if progress >= 100:
        status = AchievementStatus.COMPLETED
    elif progress > 0:
        status = AchievementStatus.IN_PROGRESS
    else:
        status = AchievementStatus.LOCKED
    return AchievementProgress(achievement=achievement, current=current,
                               progress=progress, status=status)


def evaluate_achievements(stats: ImpactStats,
                          achievements: Iterable[Achievement] = ACHIEVEMENTS) -> list[AchievementProgress]:
    """Evaluate every achievement against the user's totals."""
    return [evaluate(a, stats) for a in achievements]


def group_by_status(results: Iterable[AchievementProgress]) -> dict[AchievementStatus, list[AchievementProgress]]:
    groups = {status: [] for status in AchievementStatus}
    for result in results:
        groups[result.status].append(result)
    return groups


def share_text(achievement: Achievement) -> str:
    return (f'I just earned the "{achievement.title}" achievement on Karma! '
            f"Join me in making a difference.")
