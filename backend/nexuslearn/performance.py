"""Performance analytics derived from a progress record."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from .progress import UserProgressRecord
from .scoring import percentage

MIN_TREND_POINTS = 2


@dataclass(frozen=True)
class DailyQuizAverage:
    day: date
    average_score: int
    attempts: int

    def to_payload(self) -> Dict[str, Any]:
        return {"date": self.day.isoformat(), "averageScore": self.average_score, "attempts": self.attempts}


@dataclass(frozen=True)
class PerformanceSummary:
    subject_mastery: List[Dict[str, Any]] = field(default_factory=list)
    quiz_trend: List[DailyQuizAverage] = field(default_factory=list)
    homework_completed: int = 0
    homework_pending: int = 0
    focus_subject: Optional[str] = None
    subject_filter: Optional[str] = None
    quiz_subject_filter_applied: bool = False

    @property
    def has_trend(self) -> bool:
        return len(self.quiz_trend) >= MIN_TREND_POINTS

    def to_payload(self) -> Dict[str, Any]:
        return {
            "subjectMastery": self.subject_mastery,
            "quizTrend": [point.to_payload() for point in self.quiz_trend],
            "hasTrend": self.has_trend,
            "homework": {"completed": self.homework_completed, "pending": self.homework_pending},
            "focusSubject": self.focus_subject,
            "subjectFilter": self.subject_filter,
            "quizSubjectFilterApplied": self.quiz_subject_filter_applied,
        }


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def daily_quiz_averages(record: UserProgressRecord) -> List[DailyQuizAverage]:
    """Bucket quiz percentages by UTC calendar day and average each bucket."""
    buckets: Dict[date, List[float]] = defaultdict(list)
    for result in record.quiz_history:
        buckets[result.generated_date.date()].append(percentage(result.score, result.total_questions))
    return [
        DailyQuizAverage(day=day, average_score=round_half_up(sum(scores) / len(scores)), attempts=len(scores))
        for day, scores in sorted(buckets.items())
    ]


def summarize_performance(record: UserProgressRecord, subject_id: Optional[str] = None) -> PerformanceSummary:
    # Quiz results are not reliably tagged with a subject, so the trend always covers every quiz.
    mastery = [
        entry for entry in record.subject_mastery if subject_id is None or entry.subject_id == subject_id
    ]
    homework = [
        item for item in record.upcoming_homework if subject_id is None or item.subject_id == subject_id
    ]
    completed = sum(1 for item in homework if item.completed)
    weakest = min(mastery, key=lambda entry: entry.progress) if mastery else None
    return PerformanceSummary(
        subject_mastery=[
            {"subjectId": entry.subject_id, "name": entry.subject_name, "progress": entry.progress}
            for entry in mastery
        ],
        quiz_trend=daily_quiz_averages(record),
        homework_completed=completed,
        homework_pending=len(homework) - completed,
        focus_subject=weakest.subject_name if weakest else None,
        subject_filter=subject_id,
        quiz_subject_filter_applied=False,
    )


__all__ = [
    "DailyQuizAverage",
    "PerformanceSummary",
    "daily_quiz_averages",
    "round_half_up",
    "summarize_performance",
]
