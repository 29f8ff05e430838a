"""
Tests for answer scoring, interview aggregation and LLM error classification.
"""

import pytest

from interview_recorder.scoring.schemas import (
    AnswerEvaluation,
    CandidateContext,
    FeedbackSummary,
    JobContext,
    QuestionScore,
)
from interview_recorder.scoring.scoring_service import (
    FALLBACK_FEEDBACK,
    ScoringService,
    candidate_level,
    create_scoring_service,
    level_mismatch_guidance,
    overall_score,
    typical_years_for_level,
)
from interview_recorder.utils.llm_retry import (
    LLMAPIError,
    LLMRateLimitError,
    LLMTimeoutError,
    classify_llm_error,
)

from fakes import FakeLLM

JOB = JobContext(
    job_title="Backend Engineer",
    seniority="Senior",
    industry="Fintech",
    key_responsibilities=["Design APIs", "Mentor engineers"],
    required_skills=["Python", "PostgreSQL"],
)
CANDIDATE = CandidateContext(years_experience=6, candidate_name="Sam")


def make_score(value: int) -> QuestionScore:
    return QuestionScore(question="Q", transcript="A", score=value, reasoning="r")


@pytest.mark.parametrize("years,level", [
    (0, "Entry-level"), (2, "Junior"), (4, "Mid-level"), (6, "Senior"), (12, "Lead/Manager"),
])
def test_candidate_level(years, level):
    assert candidate_level(years) == level


def test_typical_years_for_level():
    assert typical_years_for_level("Senior") == 5
    assert typical_years_for_level("Lead") == 8
    assert typical_years_for_level(None) == 3


def test_level_mismatch_guidance():
    assert "aligns well" in level_mismatch_guidance("Senior", "Senior", 6)
    assert "but the candidate has 1 years" in level_mismatch_guidance("Senior", "Junior", 1)
    assert "noting where they exceed" in level_mismatch_guidance("Junior", "Senior", 6.5)


def test_overall_score_mapping():
    assert overall_score([]) == 1.0
    assert overall_score([make_score(0), make_score(0)]) == 1.0
    assert overall_score([make_score(2), make_score(2)]) == 9.5
    assert overall_score([make_score(2), make_score(1)]) == 7.4


async def test_failed_transcription_scores_zero_without_llm():
    llm = FakeLLM()
    service = ScoringService(llm, delay_seconds=0)

    result = await service.score_answer("Q", "[Transcription failed: no audio]", JOB, CANDIDATE)

    assert result.score == 0
    assert llm.calls == []


async def test_score_answer_uses_structured_output():
    llm = FakeLLM(answer=AnswerEvaluation(
        score=5,
        reasoning="Clear and specific.",
        strengths=["a", "b", "c", "d"],
        weaknesses=[],
        experience_gap_note="Should not be kept",
    ))
    service = ScoringService(llm, delay_seconds=0)

    result = await service.score_answer("Describe a migration.", "We moved to Postgres...", JOB, CANDIDATE)

    assert result.score == 2
    assert result.reasoning == "Clear and specific."
    assert result.strengths == ["a", "b", "c"]
    assert result.experience_gap_note is None
    prompt_text = "\n".join(m.content for m in llm.calls[0])
    assert "Senior Backend Engineer" in prompt_text
    assert "We moved to Postgres..." in prompt_text


async def test_experience_gap_note_kept_for_large_gap():
    llm = FakeLLM(answer=AnswerEvaluation(score=1, reasoning="ok", experience_gap_note="Needs more depth"))
    service = ScoringService(llm, delay_seconds=0)

    result = await service.score_answer("Q", "answer", JOB, CandidateContext(years_experience=1))

    assert result.experience_gap_note == "Needs more depth"


async def test_llm_failure_falls_back_to_middle_score():
    service = ScoringService(FakeLLM(fail=True), delay_seconds=0)

    result = await service.score_answer("Q", "answer", JOB, CANDIDATE)

    assert result.score == 1
    assert result.reasoning == "Scoring failed: model unavailable"


async def test_score_interview_aggregates():
    llm = FakeLLM(
        answer=AnswerEvaluation(score=2, reasoning="Strong"),
        feedback=FeedbackSummary(
            overall_feedback="Ready for the role.",
            top_strengths=["Depth"],
            areas_to_improve=["Brevity"],
        ),
    )
    service = ScoringService(llm, delay_seconds=0)

    result = await service.score_interview(["Q1", "Q2"], ["A1", "A2"], JOB, CANDIDATE)

    assert [q.score for q in result.question_scores] == [2, 2]
    assert result.overall_score == 9.5
    assert result.overall_feedback == "Ready for the role."
    assert result.top_strengths == ["Depth"]
    assert len(llm.calls) == 3


async def test_score_interview_feedback_fallback():
    service = ScoringService(FakeLLM(fail=True), delay_seconds=0)

    result = await service.score_interview(["Q1"], ["A1"], JOB, CANDIDATE)

    assert result.overall_feedback == FALLBACK_FEEDBACK
    assert result.overall_score == overall_score([make_score(1)])
    assert len(result.top_strengths) == 3


async def test_score_interview_length_mismatch():
    service = ScoringService(FakeLLM(), delay_seconds=0)
    with pytest.raises(ValueError):
        await service.score_interview(["Q1", "Q2"], ["A1"], JOB, CANDIDATE)


def test_scoring_disabled_without_api_key():
    assert create_scoring_service(None) is None
    assert create_scoring_service("") is None


@pytest.mark.parametrize("message,expected", [
    ("429 Resource exhausted", LLMRateLimitError),
    ("Deadline exceeded", LLMTimeoutError),
    ("503 Service unavailable", ConnectionError),
    ("Invalid argument", LLMAPIError),
])
def test_classify_llm_error(message, expected):
    assert isinstance(classify_llm_error(Exception(message)), expected)
