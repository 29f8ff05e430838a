"""
Scoring Prompts
Answer evaluation and overall feedback prompts.
Uses LangChain ChatPromptTemplate with structured Pydantic outputs.
"""

from langchain_core.prompts import ChatPromptTemplate, SystemMessagePromptTemplate, HumanMessagePromptTemplate


SENIORITY_EXPECTATIONS = {
    "entry": (
        "For Entry-level roles: prioritize foundational knowledge, eagerness to learn and cultural fit. "
        "Candidates should show basic understanding and potential for growth."
    ),
    "junior": (
        "For Junior roles: look for fundamental skills, a learning mindset and the ability to execute with guidance."
    ),
    "mid": (
        "For Mid-level roles: balance solid fundamentals with growing strategic thinking. Candidates should work "
        "independently on routine tasks and handle complex challenges with minimal guidance."
    ),
    "senior": (
        "For Senior roles: expect strategic thinking, a proven track record, leadership examples and deep "
        "domain expertise. Candidates should work independently and mentor others."
    ),
    "lead": (
        "For Lead/Manager roles: expect strategic vision, team leadership, cross-functional collaboration "
        "and business impact delivered through others."
    ),
}


# ============================================================================
# ANSWER SCORING
# ============================================================================

ANSWER_SCORING_SYSTEM = """You are an expert interviewer with deep knowledge of many industries and seniority levels.
You evaluate one recorded interview answer at a time, fairly and against the stated role level."""

ANSWER_SCORING_HUMAN = """Evaluate a candidate's answer for a {seniority} {job_title} position.

ROLE REQUIREMENTS:
Seniority Level: {seniority}
Typical Years of Experience: {typical_years}+ years
Industry: {industry}
Role Type: {role_template}

Key Responsibilities:
- {responsibilities}

Required Skills:
{skills}

{seniority_expectations}

CANDIDATE PROFILE:
Years of Experience: {years_experience}
Candidate Level: {candidate_level}
Experience Gap: {experience_gap} years relative to typical ({gap_label})

{level_guidance}

INTERVIEW QUESTION:
{question}

CANDIDATE'S ANSWER (transcript):
"{transcript}"

SCORING (0-2):
- 2: directly answers with specific, relevant detail; meets or exceeds {seniority}-level expectations
- 1: addresses the question but lacks depth or examples; foundational but not fully at {seniority} level
- 0: off-topic, incoherent, too vague, or clearly below {seniority}-level expectations

GUIDELINES:
- Behavioral questions: look for situation, actions and results
- Situational questions: look for a clear process and sound reasoning
- Technical questions: look for specific knowledge and practical application
- Very brief answers (under 20 words) score 0 unless complete for a simple question
- "I don't know" scores 0; mention any attempt to reason through the problem
- If the transcript is garbled, say so and score what can be understood
{gap_note_instruction}"""


def create_answer_scoring_prompt() -> ChatPromptTemplate:
    """
    Create prompt for scoring one answer.

    Variables:
        - job_title, seniority, industry, role_template, responsibilities, skills
        - seniority_expectations, typical_years
        - years_experience, candidate_level, experience_gap, gap_label, level_guidance
        - question, transcript, gap_note_instruction

    Returns:
        ChatPromptTemplate for structured AnswerEvaluation output
    """
    return ChatPromptTemplate.from_messages([
        SystemMessagePromptTemplate.from_template(ANSWER_SCORING_SYSTEM),
        HumanMessagePromptTemplate.from_template(ANSWER_SCORING_HUMAN)
    ])


# ============================================================================
# OVERALL FEEDBACK
# ============================================================================

OVERALL_FEEDBACK_SYSTEM = """You are an expert interviewer providing constructive, professional feedback
on a complete recorded interview."""

OVERALL_FEEDBACK_HUMAN = """Provide overall feedback for a candidate who interviewed for a {seniority} {job_title} position.

Industry: {industry}
Role Type: {role_template}

Key Responsibilities:
- {responsibilities}

Required Skills:
{skills}

{seniority_expectations}

CANDIDATE PROFILE:
Years of Experience: {years_experience}
Candidate Level: {candidate_level}

{level_guidance}

PERFORMANCE SUMMARY:
Total Questions: {question_count}
Average Score: {average_score}/2.0
Overall Score: {overall_score}/10

INDIVIDUAL QUESTIONS:
{scores_summary}

Write:
1. Overall feedback (3-4 sentences) on fit for this {seniority} role, honest about current readiness
2. Top 3 strengths, citing evidence from the answers
3. Top 3 areas to improve, with actionable advice

Only comment on competencies the questions above actually tested."""


def create_overall_feedback_prompt() -> ChatPromptTemplate:
    """
    Create prompt for interview-level feedback.

    Returns:
        ChatPromptTemplate for structured FeedbackSummary output
    """
    return ChatPromptTemplate.from_messages([
        SystemMessagePromptTemplate.from_template(OVERALL_FEEDBACK_SYSTEM),
        HumanMessagePromptTemplate.from_template(OVERALL_FEEDBACK_HUMAN)
    ])
