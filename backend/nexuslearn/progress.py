"""Progress and profile documents, with timestamp normalisation at the model boundary."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from typing import Annotated, Any, List, Literal, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

QuestionType = Literal["multiple-choice", "fill-in-the-blanks", "true/false", "short-answer"]
Difficulty = Literal["easy", "medium", "hard"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_timestamp(value: Any) -> Any:
    """Coerce ISO strings, naive datetimes and store timestamp objects into aware UTC datetimes.

    Store timestamps arrive as ``DatetimeWithNanoseconds`` (a datetime subclass), as
    protobuf ``Timestamp`` objects exposing ``ToDatetime``, or as the ``{seconds,
    nanoseconds}`` mapping the web client serialises them to.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return normalize_timestamp(datetime.fromisoformat(text))
        except ValueError:
            return value
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is not None:
            nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
            return datetime.fromtimestamp(int(seconds) + int(nanos) / 1e9, tz=timezone.utc)
        return value
    to_datetime = getattr(value, "ToDatetime", None)
    if callable(to_datetime):
        return normalize_timestamp(to_datetime())
    return value


def _normalize_calendar_day(value: Any) -> Any:
    if isinstance(value, datetime):
        return normalize_timestamp(value).date()
    if isinstance(value, str) and "T" in value:
        normalized = normalize_timestamp(value)
        return normalized.date() if isinstance(normalized, datetime) else value
    if isinstance(value, dict):
        normalized = normalize_timestamp(value)
        return normalized.date() if isinstance(normalized, datetime) else value
    return value


def blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


UtcDateTime = Annotated[datetime, BeforeValidator(normalize_timestamp)]
CalendarDay = Annotated[date, BeforeValidator(_normalize_calendar_day)]


def _truncate_to_minute(value: time) -> time:
    return value.replace(second=0, microsecond=0)


# Planner times carry minute precision only.
ClockTime = Annotated[
    time,
    AfterValidator(_truncate_to_minute),
    PlainSerializer(lambda value: value.isoformat(timespec="minutes"), return_type=str, when_used="json"),
]


class DocumentModel(BaseModel):
    """Base for stored documents: snake_case attributes, camelCase on the wire and in the store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class SubjectMastery(DocumentModel):
    subject_id: str = Field(..., min_length=1)
    subject_name: str
    progress: float = Field(..., ge=0, le=100)
    last_updated: UtcDateTime = Field(default_factory=utc_now)


class QuizQuestion(DocumentModel):
    question: str
    type: QuestionType
    answers: Optional[List[str]] = None
    correct_answer: str


class QuizResult(DocumentModel):
    quiz_id: str = Field(..., min_length=1)
    generated_date: UtcDateTime = Field(default_factory=utc_now)
    source_content: str = ""
    questions: List[QuizQuestion]
    user_answers: List[Optional[str]]
    score: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    difficulty: Difficulty = "medium"
    grade: Optional[str] = None
    subject_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_counts(self) -> "QuizResult":
        if not (len(self.user_answers) == len(self.questions) == self.total_questions):
            raise ValueError("userAnswers, questions and totalQuestions must have matching lengths.")
        if self.score > self.total_questions:
            raise ValueError("score cannot exceed totalQuestions.")
        return self


class StudyPlannerEntry(DocumentModel):
    id: str = Field(..., min_length=1)
    date: CalendarDay
    task: str = Field(..., min_length=1)
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None
    start_time: Optional[ClockTime] = None
    end_time: Optional[ClockTime] = None
    notes: Optional[str] = None
    completed: bool = False

    @field_validator("start_time", "end_time", "notes", "subject_id", "subject_name", mode="before")
    @classmethod
    def _strip_blank_strings(cls, value: Any) -> Any:
        return blank_to_none(value)

    @model_validator(mode="after")
    def _check_time_order(self) -> "StudyPlannerEntry":
        if self.start_time is not None and self.end_time is not None and self.start_time > self.end_time:
            raise ValueError("startTime must not be later than endTime.")
        return self


class HomeworkAssignment(DocumentModel):
    id: str
    subject_id: str
    subject_name: str
    title: str
    description: Optional[str] = None
    due_date: UtcDateTime
    completed: bool = False
    score: Optional[float] = None


class ExamSchedule(DocumentModel):
    id: str
    subject_id: str
    subject_name: str
    title: str
    date: UtcDateTime
    topics: List[str] = Field(default_factory=list)
    completed: Optional[bool] = None


class StudyRecommendation(DocumentModel):
    id: str
    type: Literal["topic_review", "practice_quiz", "concept_clarification"]
    subject_id: str
    subject_name: str
    title: str
    reason: str
    priority: Literal["high", "medium", "low"]
    generated_date: UtcDateTime = Field(default_factory=utc_now)


class UserProgressRecord(DocumentModel):
    uid: str = ""
    subject_mastery: List[SubjectMastery] = Field(default_factory=list)
    quiz_history: List[QuizResult] = Field(default_factory=list)
    study_planner: List[StudyPlannerEntry] = Field(default_factory=list)
    upcoming_homework: List[HomeworkAssignment] = Field(default_factory=list)
    upcoming_exams: List[ExamSchedule] = Field(default_factory=list)
    study_recommendations: List[StudyRecommendation] = Field(default_factory=list)
    last_updated: Optional[UtcDateTime] = None

    @classmethod
    def empty(cls, owner_id: str) -> "UserProgressRecord":
        return cls(uid=owner_id)

    def content_equals(self, other: "UserProgressRecord") -> bool:
        """Compare every field except the store-assigned ``last_updated``."""
        return self.model_dump(exclude={"last_updated"}) == other.model_dump(exclude={"last_updated"})


class UserProfile(DocumentModel):
    uid: str
    name: str
    email: str
    avatar_url: Optional[str] = None
    school_board: Optional[str] = None
    grade: Optional[str] = None
    join_date: UtcDateTime = Field(default_factory=utc_now)
    last_login: Optional[UtcDateTime] = None
    last_updated: Optional[UtcDateTime] = None

    @classmethod
    def default_for(
        cls,
        owner_id: str,
        email: str,
        name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> "UserProfile":
        """Profile created on first login; name and avatar fall back to values derived from the email."""
        display_name = (name or "").strip() or email.split("@")[0] or "New User"
        return cls(
            uid=owner_id,
            name=display_name,
            email=email,
            avatar_url=photo_url or f"https://avatar.vercel.sh/{email}.png",
            school_board="",
            grade="",
            join_date=utc_now(),
        )


def new_task_id() -> str:
    millis = int(utc_now().timestamp() * 1000)
    return f"task-{millis}-{uuid.uuid4().hex[:5]}"


def new_quiz_id() -> str:
    return f"quiz-{uuid.uuid4().hex}"


__all__ = [
    "Difficulty",
    "CalendarDay",
    "ClockTime",
    "DocumentModel",
    "ExamSchedule",
    "HomeworkAssignment",
    "QuestionType",
    "QuizQuestion",
    "QuizResult",
    "StudyPlannerEntry",
    "StudyRecommendation",
    "SubjectMastery",
    "UtcDateTime",
    "UserProfile",
    "UserProgressRecord",
    "blank_to_none",
    "new_quiz_id",
    "new_task_id",
    "normalize_timestamp",
    "utc_now",
]
