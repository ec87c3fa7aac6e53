"""
Student Context Engine Test Suite

Pure derivations from learner rows, plus the cached fan-out with fake stores.
"""
import pytest

from tutor_backend.ai.anonymizer import anonymize
from tutor_backend.errors import ContextUnavailableError
from tutor_backend.realtime.kv_store import InMemoryKeyValueStore
from tutor_backend.services.learner_store import LearnerProfileStore, AdaptiveContextProvider
from tutor_backend.services.student_context_service import (
    StudentContextService,
    build_mastery_by_subject,
    build_next_lesson,
    build_student_context,
    resolve_chat_mode,
    resolve_daily_limit,
    resolve_study_mode,
)

LEARNER_ID = "learner-1"

PROFILE = {
    "grade": 4,
    "level": 2,
    "strengths": ["Geometry"],
    "weaknesses": [],
    "learning_path": [
        {"title": "Intro", "status": "completed"},
        {"title": "Subtracting fractions", "module": "Fractions", "subject": "Math", "status": "not_started"},
    ],
    "learning_style": {"studyMode": "keep_up", "maxTutorChatsPerDay": "5"},
}
PROGRESS = [
    {"status": "in_progress", "mastery_pct": 55.0, "lesson_title": "Adding fractions",
     "module_title": "Fractions", "subject": "Math"},
]
MASTERY = [
    {"skill_id": 1, "mastery_pct": 40},
    {"skill_id": 2, "mastery_pct": 61},
    {"skill_id": 3, "mastery_pct": 90},
]
SKILLS = [{"id": 1, "subject_id": 10}, {"id": 2, "subject_id": 10}, {"id": 3, "subject_id": 20}]
SUBJECTS = [{"id": 10, "name": "Math"}, {"id": 20, "name": "Science"}]
PREFERENCES = {"tutor_persona_id": "coach", "opt_in_ai": False}
PERSONA = {"id": "coach", "name": "Coach Kai", "tone": "upbeat", "sample_replies": ["Nice work!", 3]}
ADAPTIVE = {"target_difficulty": 3, "misconceptions": ["4.NF.A.1"], "recent_attempts": [
    {"standards": ["4.NF.A.1"], "correct": False, "accuracy": 0.2},
]}


class FakeProfileStore(LearnerProfileStore):

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = {}

    def _serve(self, name, value):
        self.calls[name] = self.calls.get(name, 0) + 1
        if name in self.fail:
            raise RuntimeError(f"{name} unavailable")
        return value

    async def fetch_profile(self, learner_id):
        return self._serve("profile", PROFILE)

    async def fetch_recent_progress(self, learner_id, limit=5):
        return self._serve("progress", PROGRESS)

    async def fetch_mastery(self, learner_id):
        return self._serve("mastery", MASTERY)

    async def fetch_skills(self):
        return self._serve("skills", SKILLS)

    async def fetch_subjects(self):
        return self._serve("subjects", SUBJECTS)

    async def fetch_preferences(self, learner_id):
        return self._serve("preferences", PREFERENCES)

    async def fetch_persona(self, persona_id):
        return self._serve("persona", PERSONA)


class FakeAdaptiveProvider(AdaptiveContextProvider):

    def __init__(self, fail=False):
        self.fail = fail

    async def get_adaptive_context(self, learner_id):
        if self.fail:
            raise RuntimeError("adaptive unavailable")
        return ADAPTIVE


def make_service(clock, store=None, adaptive=None):
    return StudentContextService(
        store or FakeProfileStore(),
        adaptive or FakeAdaptiveProvider(),
        cache=InMemoryKeyValueStore(clock=clock),
        ttl_seconds=30,
    )


def build(profile=None, preferences=None, **overrides):
    args = dict(
        learner_id=LEARNER_ID,
        profile=profile,
        progress_rows=[],
        mastery_rows=[],
        skills=[],
        subjects=[],
        preferences=preferences,
        persona=None,
        adaptive={},
    )
    args.update(overrides)
    return build_student_context(**args)


# =============================================================================
# Test: Derivation Helpers
# =============================================================================

class TestModeResolution:

    @pytest.mark.parametrize("style, grade, expected", [
        ({}, 2, "guided_only"),
        ({}, 5, "guided_preferred"),
        ({}, 8, "free"),
        ({}, None, "free"),
        ({"chat_mode": "guided_only"}, 10, "guided_only"),
        ({"chatMode": "anything-goes"}, 10, "free"),
    ])
    def test_chat_mode(self, style, grade, expected):
        assert resolve_chat_mode(style, grade) == expected

    def test_study_mode(self):
        assert resolve_study_mode({"study_mode": "get_ahead"}) == "get_ahead"
        assert resolve_study_mode({"studyMode": "cram"}) is None
        assert resolve_study_mode({}) is None

    @pytest.mark.parametrize("style, expected", [
        ({"maxTutorChatsPerDay": "4"}, 4),
        ({"tutor_daily_limit": 2.0}, 2),
        ({"dailyTutorLimit": "lots"}, None),
        ({"tutorDailyLimit": True}, None),
        ({"tutorDailyLimit": 1, "daily_tutor_limit": 9}, 1),
        ({}, None),
    ])
    def test_daily_limit(self, style, expected):
        assert resolve_daily_limit(style) == expected


class TestRollups:

    def test_mastery_mean_per_subject_weakest_first(self):
        result = build_mastery_by_subject(MASTERY, SKILLS, SUBJECTS)
        assert [(entry.subject, entry.mastery) for entry in result] == [("Math", 50.5), ("Science", 90.0)]

    def test_mastery_needs_all_inputs(self):
        assert build_mastery_by_subject(MASTERY, [], SUBJECTS) == []

    def test_unnamed_subject_gets_placeholder_label(self):
        result = build_mastery_by_subject(
            [{"skill_id": 1, "mastery_pct": 70}], [{"id": 1, "subject_id": 7}], [{"id": 8, "name": "Art"}]
        )
        assert result[0].subject == "Subject 7"

    def test_next_lesson_skips_completed(self):
        lesson = build_next_lesson(PROFILE["learning_path"])
        assert lesson.title == "Subtracting fractions"
        assert lesson.module_title == "Fractions"

    def test_next_lesson_default_title(self):
        assert build_next_lesson([{"status": "not_started"}]).title == "Upcoming lesson"
        assert build_next_lesson("not a list") is None


class TestBuildStudentContext:

    def test_neutral_defaults_for_empty_rows(self):
        context = build()
        assert context.grade is None
        assert context.chat_mode == "free"
        assert context.allow_tutor is True
        assert context.opt_in_ai is True
        assert context.tutor_lesson_only is False
        assert context.target_difficulty == 1
        assert context.misconceptions == []

    def test_learner_ref_is_anonymized(self):
        context = build()
        assert context.learner_ref == anonymize(LEARNER_ID)
        assert LEARNER_ID not in str(context.to_dict())

    def test_lesson_only_defaults_on_for_graded_learners(self):
        assert build(profile={"grade": 5}).tutor_lesson_only is True

    def test_lesson_only_explicit_override(self):
        profile = {"grade": 5, "learning_style": {"lessonOnly": False}}
        assert build(profile=profile).tutor_lesson_only is False

    def test_guardian_switch_aliases(self):
        profile = {"learning_style": {"ai_enabled": False}}
        assert build(profile=profile).allow_tutor is False

    def test_parent_locks(self):
        profile = {"learning_style": {"chatMode": "guided_only", "chatModeLocked": True, "study_mode_locked": True}}
        context = build(profile=profile)
        assert context.chat_mode == "guided_only"
        assert context.chat_mode_locked is True
        assert context.study_mode_locked is True

    def test_focus_areas_fall_back_to_weakest_subjects(self):
        context = build(profile=PROFILE, mastery_rows=MASTERY, skills=SKILLS, subjects=SUBJECTS)
        assert context.focus_areas == ["Math", "Science"]

    def test_opt_out_preference(self):
        assert build(preferences={"opt_in_ai": False}).opt_in_ai is False


# =============================================================================
# Test: StudentContextService
# =============================================================================

class TestStudentContextService:

    @pytest.mark.asyncio
    async def test_assembles_full_context(self, clock):
        context = await make_service(clock).get(LEARNER_ID)

        assert context.grade == 4
        assert context.chat_mode == "guided_preferred"
        assert context.study_mode == "keep_up"
        assert context.tutor_daily_limit == 5
        assert context.tutor_lesson_only is True
        assert context.opt_in_ai is False
        assert context.active_lesson.title == "Adding fractions"
        assert context.next_lesson.title == "Subtracting fractions"
        assert context.persona.name == "Coach Kai"
        assert context.persona.sample_replies == ["Nice work!"]
        assert context.target_difficulty == 3
        assert context.misconceptions == ["4.NF.A.1"]
        assert context.recent_attempts[0].correct is False

    @pytest.mark.asyncio
    async def test_profile_failure_is_fatal(self, clock):
        service = make_service(clock, store=FakeProfileStore(fail={"profile"}))
        with pytest.raises(ContextUnavailableError) as exc_info:
            await service.get(LEARNER_ID)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_secondary_failures_degrade(self, clock):
        store = FakeProfileStore(fail={"progress", "mastery", "persona"})
        context = await make_service(clock, store=store).get(LEARNER_ID)

        assert context.active_lesson is None
        assert context.mastery_by_subject == []
        assert context.persona is None
        assert context.grade == 4

    @pytest.mark.asyncio
    async def test_adaptive_failure_uses_neutral_hints(self, clock):
        service = make_service(clock, adaptive=FakeAdaptiveProvider(fail=True))
        context = await service.get(LEARNER_ID)
        assert context.target_difficulty == 1
        assert context.misconceptions == []
        assert context.recent_attempts == []

    @pytest.mark.asyncio
    async def test_context_cached_until_ttl(self, clock):
        store = FakeProfileStore()
        service = make_service(clock, store=store)

        first = await service.get(LEARNER_ID)
        clock.advance(10)
        assert await service.get(LEARNER_ID) is first
        assert store.calls["profile"] == 1

        clock.advance(25)
        await service.get(LEARNER_ID)
        assert store.calls["profile"] == 2

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, clock):
        store = FakeProfileStore(fail={"profile"})
        service = make_service(clock, store=store)
        with pytest.raises(ContextUnavailableError):
            await service.get(LEARNER_ID)

        store.fail.clear()
        assert (await service.get(LEARNER_ID)).grade == 4
