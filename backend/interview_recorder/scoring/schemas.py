"""
Pydantic Schemas for Scoring
Structured LLM outputs and the scoring results returned by the API.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


# ==================== Context ====================

class JobContext(BaseModel):
    """Role the candidate is evaluated against"""
    job_title: str
    seniority: Optional[str] = None
    industry: Optional[str] = None
    role_template: Optional[str] = None
    key_responsibilities: List[str] = Field(default_factory=list)
    required_skills: List[str] = Field(default_factory=list)


class CandidateContext(BaseModel):
    years_experience: float = 0.0
    candidate_name: Optional[str] = None


# ==================== LLM Outputs ====================

class AnswerEvaluation(BaseModel):
    """Structured evaluation of one answer"""

    score: int = Field(
        description="0 (poor), 1 (acceptable) or 2 (excellent) relative to the role's seniority"
    )

    reasoning: str = Field(
        description="2-3 sentences explaining the score relative to the seniority expectations"
    )

    strengths: List[str] = Field(
        default_factory=list,
        description="Specific strengths shown in this answer (up to 3)"
    )

    weaknesses: List[str] = Field(
        default_factory=list,
        description="Specific weaknesses in this answer (up to 3)"
    )

    experience_gap_note: Optional[str] = Field(
        default=None,
        description="Only when experience is far from typical: whether it is sufficient for current readiness"
    )


class FeedbackSummary(BaseModel):
    """Structured overall feedback for a full interview"""

    overall_feedback: str = Field(
        description="3-4 sentence summary of fit for the role at its seniority level"
    )

    top_strengths: List[str] = Field(
        default_factory=list,
        description="Top 3 strengths with evidence from the answers"
    )

    areas_to_improve: List[str] = Field(
        default_factory=list,
        description="Top 3 actionable areas to improve, limited to competencies actually tested"
    )


# ==================== Results ====================

class QuestionScore(BaseModel):
    question: str
    transcript: str
    score: int = Field(..., ge=0, le=2)
    reasoning: str
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    experience_gap_note: Optional[str] = None


class InterviewScore(BaseModel):
    question_scores: List[QuestionScore]
    overall_score: float = Field(..., description="1-10 scale")
    overall_feedback: str
    top_strengths: List[str] = Field(default_factory=list)
    areas_to_improve: List[str] = Field(default_factory=list)
