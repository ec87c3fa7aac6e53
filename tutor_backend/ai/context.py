"""
tutor_backend/ai/context.py
Learner & Request Context Objects

STRICT CONTRACT:
- StudentContext only ever carries the anonymized learner reference
- TutorContext fields are already sanitized; nothing downstream re-reads
  the raw request body
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any

LEARNING_MODE = "learning"
MARKETING_MODE = "marketing"

CHAT_MODES = ("guided_only", "guided_preferred", "free")
STUDY_MODES = ("catch_up", "keep_up", "get_ahead")


@dataclass
class LessonSnapshot:
    title: str
    module_title: Optional[str] = None
    subject: Optional[str] = None
    status: Optional[str] = None
    mastery_pct: Optional[float] = None
    last_activity_at: Optional[str] = None


@dataclass
class SubjectMastery:
    subject: str
    mastery: float


@dataclass
class TutorPersona:
    """Tutor voice assigned through learner preferences"""
    id: str
    name: str
    tone: Optional[str] = None
    constraints: Optional[str] = None
    prompt_snippet: Optional[str] = None
    sample_replies: List[str] = field(default_factory=list)


@dataclass
class AdaptiveAttempt:
    standards: List[str]
    correct: bool
    accuracy: Optional[float] = None
    difficulty: Optional[int] = None
    source: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class StudentContext:
    """
    Per-learner tailoring data assembled by the student context service.

    Cached for a short TTL; every field has a neutral default so a partial
    fetch still yields a usable object.
    """
    learner_ref: str
    grade: Optional[int] = None
    level: Optional[int] = None
    strengths: List[str] = field(default_factory=list)
    focus_areas: List[str] = field(default_factory=list)
    mastery_by_subject: List[SubjectMastery] = field(default_factory=list)
    active_lesson: Optional[LessonSnapshot] = None
    next_lesson: Optional[LessonSnapshot] = None
    persona: Optional[TutorPersona] = None
    opt_in_ai: bool = True
    chat_mode: str = "free"
    chat_mode_locked: bool = False
    study_mode: Optional[str] = None
    study_mode_locked: bool = False
    allow_tutor: bool = True
    tutor_lesson_only: bool = False
    tutor_daily_limit: Optional[int] = None
    target_difficulty: Optional[int] = None
    misconceptions: List[str] = field(default_factory=list)
    recent_attempts: List[AdaptiveAttempt] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization"""
        return asdict(self)


@dataclass
class TutorContext:
    """Sanitized inputs for one model exchange"""
    prompt: str
    system_prompt: str
    mode: str = LEARNING_MODE
    knowledge: Optional[str] = None
    student_context: Optional[StudentContext] = None


def format_student_context(context: Optional[StudentContext]) -> str:
    """
    Render the learner summary injected as a system message.

    Returns an empty string when there is no context.
    """
    if context is None:
        return ""

    grade = context.grade if context.grade is not None else "n/a"
    level = context.level if context.level is not None else "n/a"
    lines = [f"Learner ref {context.learner_ref} | grade {grade} | level {level}"]

    if context.strengths:
        lines.append(f"Strength areas: {', '.join(context.strengths[:3])}")
    if context.focus_areas:
        lines.append(f"Focus areas: {', '.join(context.focus_areas[:3])}")
    if context.mastery_by_subject:
        mastery = " | ".join(
            f"{entry.subject}: {round(entry.mastery)}%"
            for entry in context.mastery_by_subject[:4]
        )
        lines.append(f"Recent mastery: {mastery}")

    lesson = context.active_lesson
    if lesson:
        bits = [f"Active lesson: {lesson.title}"]
        if lesson.module_title:
            bits.append(f"Module: {lesson.module_title}")
        if lesson.subject:
            bits.append(f"Subject: {lesson.subject}")
        if lesson.status:
            bits.append(f"Status: {lesson.status}")
        if lesson.mastery_pct is not None:
            bits.append(f"Mastery: {round(lesson.mastery_pct)}%")
        lines.append(" | ".join(bits))

    upcoming = context.next_lesson
    if upcoming:
        bits = [f"Next lesson: {upcoming.title}"]
        if upcoming.module_title:
            bits.append(f"Module: {upcoming.module_title}")
        if upcoming.subject:
            bits.append(f"Subject: {upcoming.subject}")
        lines.append(" | ".join(bits))

    if context.chat_mode:
        locked = " (parent locked)" if context.chat_mode_locked else ""
        lines.append(f"Chat mode: {context.chat_mode}{locked}")
    if context.study_mode:
        lines.append(f"Study mode: {context.study_mode}")
    if not context.allow_tutor:
        lines.append("Tutor access: disabled by parent/guardian.")
    if context.tutor_lesson_only:
        lines.append("Tutor scope: lesson-only; decline unrelated prompts.")
    if context.tutor_daily_limit is not None:
        lines.append(f"Tutor cap: {context.tutor_daily_limit} chats/day.")

    return "\n".join(lines)
