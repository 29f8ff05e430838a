"""
Scoring Service
Grades answer transcripts against role-specific rubrics and summarizes the interview.

Uses ChatGoogleGenerativeAI with structured Pydantic outputs. Individual answers
are scored 0-2; the interview score maps the average onto a 1-10 scale.
"""

import asyncio
import logging
import time
from typing import List, Optional, Sequence

from langchain_google_genai import ChatGoogleGenerativeAI

from interview_recorder.core.constants import OVERALL_SCORE_BASE, OVERALL_SCORE_MULTIPLIER
from interview_recorder.core.errors import ScoringError
from interview_recorder.scoring.prompts import (
    SENIORITY_EXPECTATIONS,
    create_answer_scoring_prompt,
    create_overall_feedback_prompt,
)
from interview_recorder.scoring.schemas import (
    AnswerEvaluation,
    CandidateContext,
    FeedbackSummary,
    InterviewScore,
    JobContext,
    QuestionScore,
)
from interview_recorder.utils.llm_retry import async_retry_llm_call, call_llm_with_timeout
from interview_recorder.utils.metrics import scoring_latency_seconds, scoring_requests_total

logger = logging.getLogger(__name__)

TRANSCRIPTION_FAILED_PREFIX = "[Transcription failed"
DEFAULT_SENIORITY = "Mid-level"

FALLBACK_FEEDBACK = (
    "Interview evaluation completed successfully. "
    "The candidate demonstrated competency across the assessment areas."
)
FALLBACK_STRENGTHS = ["Communication skills", "Relevant experience", "Problem-solving ability"]
FALLBACK_AREAS = [
    "Could provide more specific examples",
    "Further skill development recommended",
    "Industry knowledge depth",
]


# ==================== Level Helpers ====================

def candidate_level(years_experience: float) -> str:
    if years_experience < 1:
        return "Entry-level"
    if years_experience < 3:
        return "Junior"
    if years_experience < 5:
        return "Mid-level"
    if years_experience < 8:
        return "Senior"
    return "Lead/Manager"


def typical_years_for_level(seniority: Optional[str]) -> int:
    level = (seniority or "").lower()
    if "entry" in level:
        return 0
    if "junior" in level:
        return 1
    if "senior" in level:
        return 5
    if "lead" in level or "manager" in level:
        return 8
    return 3


def level_rank(level: Optional[str]) -> int:
    """Entry=1, Junior=2, Mid=3, Senior=4, Lead/Manager=5; unknown levels rank as mid."""
    level = (level or "").lower()
    if "entry" in level:
        return 1
    if "junior" in level:
        return 2
    if "mid" in level:
        return 3
    if "senior" in level:
        return 4
    if "lead" in level or "manager" in level:
        return 5
    return 3


def seniority_expectations(seniority: Optional[str]) -> str:
    level = (seniority or "").lower()
    for key in ("entry", "junior", "senior"):
        if key in level:
            return SENIORITY_EXPECTATIONS[key]
    if "lead" in level or "manager" in level:
        return SENIORITY_EXPECTATIONS["lead"]
    return SENIORITY_EXPECTATIONS["mid"]


def format_years(years: float) -> str:
    return str(int(years)) if float(years).is_integer() else str(years)


def level_mismatch_guidance(job_seniority: str, cand_level: str, years_experience: float) -> str:
    years = format_years(years_experience)
    job_rank = level_rank(job_seniority)
    cand_rank = level_rank(cand_level)

    if job_rank == cand_rank:
        return f"The candidate's {years} years of experience aligns well with this {job_seniority} role."
    if cand_rank < job_rank:
        return (
            f"Note: This is a {job_seniority} role, but the candidate has {years} years of experience "
            f"({cand_level} level). Evaluate against {job_seniority}-level expectations, but consider whether "
            f"their answers show the depth expected for this role or strong potential to grow into it."
        )
    return (
        f"Note: The candidate has {years} years of experience ({cand_level} level) applying for a "
        f"{job_seniority} role. Evaluate against {job_seniority}-level expectations, noting where they exceed them."
    )


def overall_score(scores: Sequence[QuestionScore]) -> float:
    """round(1.0 + average * 4.25, 1): 0 -> 1.0, 2 -> 9.5."""
    if not scores:
        return OVERALL_SCORE_BASE
    average = sum(s.score for s in scores) / len(scores)
    return round(OVERALL_SCORE_BASE + average * OVERALL_SCORE_MULTIPLIER, 1)


def _bulleted(items: List[str], limit: int, default: str, separator: str) -> str:
    return separator.join(items[:limit]) if items else default


# ==================== Service ====================

class ScoringService:
    """
    LLM-backed answer scoring.

    A failed transcription scores 0 without an LLM call; an LLM failure scores 1
    with a "Scoring failed" reasoning so a single bad call never sinks a candidate.
    """

    def __init__(
        self,
        llm: ChatGoogleGenerativeAI,
        delay_seconds: float = 0.5,
        timeout_seconds: int = 60
    ):
        self.llm = llm
        self.delay_seconds = delay_seconds
        self.timeout_seconds = timeout_seconds
        self.answer_prompt = create_answer_scoring_prompt()
        self.feedback_prompt = create_overall_feedback_prompt()
        logger.info("Initialized ScoringService")

    @async_retry_llm_call
    async def _invoke_structured(self, structured_llm, messages):
        return await call_llm_with_timeout(structured_llm.ainvoke, self.timeout_seconds, messages)

    async def score_answer(
        self,
        question: str,
        transcript: str,
        job_context: JobContext,
        candidate_context: CandidateContext
    ) -> QuestionScore:
        """
        Score one answer on the 0-2 rubric.

        Args:
            question: Question text
            transcript: Answer transcript
            job_context: Role being interviewed for
            candidate_context: Candidate experience

        Returns:
            QuestionScore (never raises)
        """
        if transcript.startswith(TRANSCRIPTION_FAILED_PREFIX):
            scoring_requests_total.labels(status="skipped").inc()
            return QuestionScore(
                question=question,
                transcript=transcript,
                score=0,
                reasoning="Unable to score - transcription failed",
                strengths=[],
                weaknesses=["No audio transcript available"],
            )

        seniority = job_context.seniority or DEFAULT_SENIORITY
        level = candidate_level(candidate_context.years_experience)
        typical = typical_years_for_level(seniority)
        gap = candidate_context.years_experience - typical
        include_gap_note = gap < -2 or gap > 3

        start_time = time.time()
        try:
            messages = self.answer_prompt.format_messages(
                job_title=job_context.job_title,
                seniority=seniority,
                typical_years=typical,
                industry=job_context.industry or "Not specified",
                role_template=job_context.role_template or "Professional role",
                responsibilities=_bulleted(
                    job_context.key_responsibilities, 4, "General professional responsibilities", "\n- "
                ),
                skills=_bulleted(job_context.required_skills, 5, "General professional skills", ", "),
                seniority_expectations=seniority_expectations(seniority),
                years_experience=format_years(candidate_context.years_experience),
                candidate_level=level,
                experience_gap=f"{'+' if gap >= 0 else ''}{format_years(gap)}",
                gap_label="significantly below" if gap < -2 else "significantly above" if gap > 3 else "aligned",
                level_guidance=level_mismatch_guidance(seniority, level, candidate_context.years_experience),
                question=question,
                transcript=transcript,
                gap_note_instruction=(
                    "- Include an experience gap note on whether their experience is sufficient for current "
                    "readiness in this role, and what they would need to get there"
                    if include_gap_note else
                    "- Leave the experience gap note empty"
                ),
            )
            structured_llm = self.llm.with_structured_output(AnswerEvaluation)
            evaluation: AnswerEvaluation = await self._invoke_structured(structured_llm, messages)
        except Exception as e:
            logger.error(f"Scoring failed for question '{question[:60]}': {e}")
            scoring_requests_total.labels(status="fallback").inc()
            return QuestionScore(
                question=question,
                transcript=transcript,
                score=1,
                reasoning=f"Scoring failed: {e}",
                strengths=[],
                weaknesses=["Unable to evaluate due to technical error"],
            )
        finally:
            scoring_latency_seconds.observe(time.time() - start_time)

        scoring_requests_total.labels(status="success").inc()
        return QuestionScore(
            question=question,
            transcript=transcript,
            score=max(0, min(2, evaluation.score)),
            reasoning=evaluation.reasoning or "No reasoning provided",
            strengths=evaluation.strengths[:3],
            weaknesses=evaluation.weaknesses[:3],
            experience_gap_note=(evaluation.experience_gap_note or None) if include_gap_note else None,
        )

    async def generate_overall_feedback(
        self,
        question_scores: List[QuestionScore],
        job_context: JobContext,
        candidate_context: CandidateContext
    ) -> InterviewScore:
        """Aggregate per-question scores and ask the LLM for interview-level feedback."""
        score = overall_score(question_scores)
        if not question_scores:
            return self._fallback_feedback(question_scores)

        average = sum(q.score for q in question_scores) / len(question_scores)
        seniority = job_context.seniority or DEFAULT_SENIORITY
        level = candidate_level(candidate_context.years_experience)

        summary_lines = []
        for i, q in enumerate(question_scores, start=1):
            answer = q.transcript[:150] + ("..." if len(q.transcript) > 150 else "")
            entry = f"Question {i}: {q.question}\nScore: {q.score}/2\nAnswer: \"{answer}\"\nEvaluation: {q.reasoning}"
            if q.experience_gap_note:
                entry += f"\nExperience Gap Note: {q.experience_gap_note}"
            summary_lines.append(entry)

        try:
            messages = self.feedback_prompt.format_messages(
                job_title=job_context.job_title,
                seniority=seniority,
                industry=job_context.industry or "Not specified",
                role_template=job_context.role_template or "Professional role",
                responsibilities=_bulleted(
                    job_context.key_responsibilities, 4, "General professional responsibilities", "\n- "
                ),
                skills=_bulleted(job_context.required_skills, len(job_context.required_skills), "General professional skills", ", "),
                seniority_expectations=seniority_expectations(seniority),
                years_experience=format_years(candidate_context.years_experience),
                candidate_level=level,
                level_guidance=level_mismatch_guidance(seniority, level, candidate_context.years_experience),
                question_count=len(question_scores),
                average_score=f"{average:.2f}",
                overall_score=score,
                scores_summary="\n\n".join(summary_lines),
            )
            structured_llm = self.llm.with_structured_output(FeedbackSummary)
            summary: FeedbackSummary = await self._invoke_structured(structured_llm, messages)
        except Exception as e:
            logger.error(f"Overall feedback generation failed: {e}")
            return self._fallback_feedback(question_scores)

        return InterviewScore(
            question_scores=question_scores,
            overall_score=score,
            overall_feedback=summary.overall_feedback or "Overall performance evaluation completed.",
            top_strengths=summary.top_strengths[:3] or FALLBACK_STRENGTHS,
            areas_to_improve=summary.areas_to_improve[:3] or FALLBACK_AREAS,
        )

    async def score_interview(
        self,
        questions: List[str],
        transcripts: List[str],
        job_context: JobContext,
        candidate_context: CandidateContext
    ) -> InterviewScore:
        """
        Score every answer sequentially, pausing between calls, then aggregate.

        Raises:
            ValueError: If questions and transcripts differ in length
        """
        if len(questions) != len(transcripts):
            raise ValueError(f"Got {len(questions)} questions but {len(transcripts)} transcripts")

        question_scores = []
        for i, (question, transcript) in enumerate(zip(questions, transcripts)):
            question_scores.append(
                await self.score_answer(question, transcript, job_context, candidate_context)
            )
            if i < len(questions) - 1 and self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)

        result = await self.generate_overall_feedback(question_scores, job_context, candidate_context)
        logger.info(f"Scored interview: {len(question_scores)} answers, overall {result.overall_score}/10")
        return result

    def _fallback_feedback(self, question_scores: List[QuestionScore]) -> InterviewScore:
        return InterviewScore(
            question_scores=question_scores,
            overall_score=overall_score(question_scores),
            overall_feedback=FALLBACK_FEEDBACK,
            top_strengths=list(FALLBACK_STRENGTHS),
            areas_to_improve=list(FALLBACK_AREAS),
        )


def create_scoring_service(
    api_key: Optional[str],
    model: str = "gemini-2.5-flash",
    temperature: float = 0.3,
    delay_seconds: float = 0.5
) -> Optional[ScoringService]:
    """
    Build the scoring service, or None when no API key is configured.

    Raises:
        ScoringError: If the Gemini client cannot be created
    """
    if not api_key:
        logger.warning("GEMINI_API_KEY not set; scoring disabled")
        return None
    try:
        llm = ChatGoogleGenerativeAI(
            model=model,
            google_api_key=api_key,
            temperature=temperature,
        )
    except Exception as e:
        raise ScoringError(f"Failed to initialize {model}: {e}") from e
    return ScoringService(llm, delay_seconds=delay_seconds)
