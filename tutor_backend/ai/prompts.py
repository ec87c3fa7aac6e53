"""
tutor_backend/ai/prompts.py
System Prompts & Message Composition

PURPOSE:
Turn a sanitized TutorContext into the ordered, role-tagged message list
sent upstream.

MESSAGE ORDER (optional parts are skipped, never reordered):
1. Base system prompt (tutor or marketing) + caller addendum
2. Product facts (marketing only)
3. Learner context summary
4. Persona
5. Opt-in notice
6. Adaptive difficulty hint
7. Guardrails (grade band, subject, hint-first, lesson-only)
8. Chat mode
9. Study mode
10. Study-mode lock
11. User prompt

Parts 3-10 apply to learning mode only.
"""

from typing import Optional, List, Dict

from tutor_backend.ai.context import (
    TutorContext,
    StudentContext,
    TutorPersona,
    LEARNING_MODE,
    MARKETING_MODE,
    format_student_context,
)
from tutor_backend.ai.sanitizer import (
    sanitize_prompt,
    sanitize_text,
    MAX_SYSTEM_PROMPT_CHARS,
    MAX_KNOWLEDGE_CHARS,
)
from tutor_backend.errors import ValidationError

Message = Dict[str, str]


BASE_TUTOR_SYSTEM_PROMPT = " ".join([
    "You are ElevatED, a patient K-12 tutor.",
    "Start with a short hint or next step before revealing a full solution; only provide the "
    "complete answer if the learner directly asks or is still stuck.",
    "Give step-by-step explanations, check for understanding, and keep responses concise.",
    "Keep answers age-appropriate and decline unsafe or off-topic requests. Avoid sharing any "
    "personal data, emails, or phone numbers. Do not request PII.",
    "Politely refuse violence, self-harm, bullying, pranks, politics, or requests for "
    "contact/location info. Redirect the learner to a trusted adult when something sounds "
    "unsafe or personal.",
])

MARKETING_SYSTEM_PROMPT = """You are ElevatED, the official marketing assistant for ElevatED - an adaptive K-12 home-learning platform.
Keep replies concise (2-3 sentences, under ~90 words), warm, encouraging, and confident.
Avoid repeating the brand line "Home Learning. Elevated Together."; only mention it if the visitor explicitly asks for the tagline.
Use only the provided product facts; do not invent features or discuss internal tools, code, or routing.
If the facts do not cover something, say you are unsure and offer to connect them with ElevatED support instead of guessing.
If someone asks for study help or homework answers, remind them this chat is for product info only and direct them to the in-product AI tutor."""

MARKETING_KNOWLEDGE = """Product: ElevatED is a K-12 home-learning platform that pairs every student with a private AI tutor and adaptive lesson pathways.
Audience: Families, students, and parents learning outside school; not a school/teacher LMS.
How it works: Quick sign-up and an adaptive diagnostic (~15-20 minutes) set the starting point, then lessons adjust difficulty, hints, and feedback after every session and quiz.
Student experience: K-12 Math, English, Science, and Social Studies with daily lesson plans, mixed quizzes and instant feedback, review refreshers, and weekend boosts. Motivation tools include XP, streaks, badges, avatar customization, and quests/challenges.
AI Learning Assistant: Context-aware tutor with hints-first guardrails, step-by-step guidance, and motivational check-ins; provides full solutions on request. The marketing chat never answers homework/quiz questions and directs learners to the student tutor.
Parent experience: Family dashboard with real-time progress, mastery by subject, advanced analytics (Plus/Pro), weekly AI summaries/digests, alerts for missed sessions or flagged concepts, goals/rewards controls, and easy family linking via codes. Parents can request data export or deletion from the Family Dashboard.
Curriculum & assessments: Guided diagnostics, adaptive lessons across core K-12 subjects, concept-level insights, and suggested review activities when learners struggle.
Pricing/Plans:
- Free: $0/month for 1 learner; guided diagnostic; core subjects; up to 10 lessons/month; AI tutor access limited to 3 chats per day; basic progress for the last 30 days; weekly digest optional.
- Plus: $6.99/month for the first student ($5.59/additional, 20% off; up to 4 seats); roughly 100 lessons/assignments per month; high AI tutor cap with fair-use guardrails; advanced analytics; weekly AI summaries/digest; exports/PDFs; alerts and saved practice sets.
- Pro: $9.99/month for the first student ($7.99/additional, 20% off; up to 6 seats); unlimited lessons/assignments; AI tutor effectively unlimited (fair use); priority support; full analytics history with CSV exports; automation like weekly study plan refresh and priority access to new content.
AI stack: OpenRouter + Mistral 7B Instruct (free tier) power both the marketing assistant and the in-product tutor.
Support: Encourage visitors to reach out through the site contact options for onboarding, billing, or family setup specifics."""

KNOWLEDGE_PREFIX = "Product facts to ground your answer:\n"
LEARNER_CONTEXT_PREFIX = "Learner context (use for tailoring, never repeat sensitive data):\n"

HINT_FIRST_GUIDANCE = (
    "Always offer a hint or step-by-step nudge before giving the full solution. If the learner "
    "insists on the full answer, keep it concise and still explain why it works."
)

LESSON_ONLY_GUIDANCE = (
    "Lesson-only mode is enabled. Stay on the active lesson/module and decline unrelated "
    "requests, asking the learner to return to their current lesson."
)

OPT_OUT_NOTICE = (
    "This learner has opted out of personalized AI help. Do not reference their progress, "
    "mastery, or history; answer only the question asked."
)

CHAT_MODE_GUIDANCE = {
    "guided_only": (
        "Chat mode: guided_only. Ask 1-2 clarifying questions before longer answers. Keep answers "
        "short (2-3 steps). If the prompt is off-topic or personal, politely decline and ask the "
        "learner to pick a different guided prompt; remind them to ask a trusted adult for safety issues."
    ),
    "guided_preferred": (
        "Chat mode: guided_preferred. Lead with a concise answer and one clarifying question. If the "
        "request is off-topic/personal, decline and suggest choosing a guided prompt. Keep responses "
        "brief (2-3 steps)."
    ),
}

STUDY_MODE_GUIDANCE = {
    "catch_up": (
        "Study mode: catch_up. Prioritize remediation, weaker skills, and gentle reassurance. "
        "Keep responses short and suggest one review action."
    ),
    "get_ahead": (
        "Study mode: get_ahead. Offer extension or stretch practice within safe bounds. Keep tone "
        "upbeat but concise; do not unlock unsafe or off-grade content."
    ),
    "keep_up": "Study mode: keep_up. Stay balanced; keep answers concise and on-grade.",
}

STUDY_MODE_LOCK_NOTICE = (
    "Study mode is locked by a parent/teacher. Do not switch tone beyond the assigned mode."
)

MAX_PERSONA_EXAMPLES = 3


def grade_band_guidance(grade: Optional[int]) -> Optional[str]:
    """Tone guidance for K-3, 4-8 and 9-12."""
    if grade is None:
        return None
    if grade <= 3:
        return (
            "Grade band K-3: use very short sentences, simple words, and concrete real-life examples. "
            "Offer one hint at a time and invite the learner to try the next step."
        )
    if grade <= 8:
        return (
            "Grade band 4-8: give 2-3 step hints, define any new vocabulary, and keep paragraphs short. "
            "Encourage the learner to explain their thinking back to you."
        )
    return (
        "Grade band 9-12: expect deeper reasoning and study strategies. Encourage evidence, "
        "error-spotting, and concise explanations before sharing full solutions."
    )


def subject_guidance(subject: Optional[str]) -> Optional[str]:
    """Pedagogical guidance keyed on the lesson's subject name."""
    if not subject:
        return None
    normalized = subject.lower()
    if "math" in normalized:
        return (
            "When helping with math, foreground the process: write out the steps, keep numbers small "
            "when illustrating, and only share the final answer after the learner tries."
        )
    if "english" in normalized or "ela" in normalized:
        return (
            "For reading and writing, model structure and examples rather than rewriting student work. "
            "Offer sentence starters and quick checks for understanding."
        )
    if "science" in normalized:
        return (
            "For science, connect ideas to observable phenomena and experiments. Emphasise "
            "cause-and-effect and simple definitions before deeper theory."
        )
    if "social" in normalized:
        return (
            "For social studies, ground explanations in timelines, causes, and perspectives. "
            "Encourage sourcing evidence and concise summaries."
        )
    return None


def build_learning_guardrails(context: Optional[StudentContext]) -> str:
    subject = None
    if context is not None:
        if context.active_lesson and context.active_lesson.subject:
            subject = context.active_lesson.subject
        elif context.next_lesson:
            subject = context.next_lesson.subject

    snippets = [
        grade_band_guidance(context.grade if context else None),
        subject_guidance(subject),
        HINT_FIRST_GUIDANCE,
        LESSON_ONLY_GUIDANCE if context is not None and context.tutor_lesson_only else None,
    ]
    return "\n".join(snippet for snippet in snippets if snippet)


def build_persona_directive(persona: Optional[TutorPersona]) -> Optional[str]:
    if persona is None:
        return None
    lines = [f"Tutor persona: {persona.name}."]
    if persona.tone:
        lines.append(f"Tone: {persona.tone}.")
    if persona.constraints:
        lines.append(f"Constraints: {persona.constraints}")
    if persona.prompt_snippet:
        lines.append(persona.prompt_snippet)
    examples = [reply for reply in persona.sample_replies if reply][:MAX_PERSONA_EXAMPLES]
    if examples:
        lines.append("Example replies in this voice:")
        lines.extend(f"- {reply}" for reply in examples)
    return "\n".join(lines)


def build_adaptive_hint(context: StudentContext) -> Optional[str]:
    if context.target_difficulty is None and not context.misconceptions:
        return None
    parts = []
    if context.target_difficulty is not None:
        parts.append(
            f"Adaptive target difficulty: {context.target_difficulty} (1 = easiest, 5 = hardest). "
            "Pitch hints and practice at this level."
        )
    if context.misconceptions:
        parts.append(
            f"Recent misconceptions to address gently: {', '.join(context.misconceptions)}."
        )
    return " ".join(parts)


def resolve_system_prompt(mode: str, requested_prompt: Optional[str] = None) -> str:
    """Mode base prompt, plus the sanitized caller addendum on its own line."""
    base = MARKETING_SYSTEM_PROMPT if mode == MARKETING_MODE else BASE_TUTOR_SYSTEM_PROMPT
    if not requested_prompt:
        return base
    addendum = sanitize_text(requested_prompt, MAX_SYSTEM_PROMPT_CHARS)
    return f"{base}\n{addendum}" if addendum else base


def build_tutor_context(
    prompt: str,
    mode: str = LEARNING_MODE,
    system_prompt: Optional[str] = None,
    knowledge: Optional[str] = None,
    student_context: Optional[StudentContext] = None
) -> TutorContext:
    """
    Sanitize request fields into a TutorContext.

    Raises:
        ValidationError: Prompt empty after sanitization
    """
    mode = MARKETING_MODE if mode == MARKETING_MODE else LEARNING_MODE
    clean_prompt = sanitize_prompt(prompt or "")
    if not clean_prompt:
        raise ValidationError("Prompt is required.")

    if mode == MARKETING_MODE:
        raw_knowledge = "\n\n".join(part for part in (MARKETING_KNOWLEDGE, knowledge) if part)
    else:
        raw_knowledge = knowledge
    clean_knowledge = sanitize_text(raw_knowledge, MAX_KNOWLEDGE_CHARS) if raw_knowledge else None

    return TutorContext(
        prompt=clean_prompt,
        system_prompt=resolve_system_prompt(mode, system_prompt),
        mode=mode,
        knowledge=clean_knowledge or None,
        student_context=student_context,
    )


def compose_messages(context: TutorContext) -> List[Message]:
    """Build the ordered chat-completion message list for a TutorContext."""
    messages: List[Message] = [{"role": "system", "content": context.system_prompt}]

    def system(content: Optional[str]) -> None:
        if content:
            messages.append({"role": "system", "content": content})

    if context.mode == MARKETING_MODE and context.knowledge:
        system(f"{KNOWLEDGE_PREFIX}{context.knowledge}")

    if context.mode == LEARNING_MODE:
        student = context.student_context

        summary = format_student_context(student)
        if summary.strip():
            system(f"{LEARNER_CONTEXT_PREFIX}{summary}")

        if student is not None:
            system(build_persona_directive(student.persona))
            if not student.opt_in_ai:
                system(OPT_OUT_NOTICE)
            system(build_adaptive_hint(student))

        system(build_learning_guardrails(student))

        if student is not None:
            system(CHAT_MODE_GUIDANCE.get(student.chat_mode))
            system(STUDY_MODE_GUIDANCE.get(student.study_mode))
            if student.study_mode_locked:
                system(STUDY_MODE_LOCK_NOTICE)

    messages.append({"role": "user", "content": context.prompt})
    return messages
