"""
Global Deadline Timer
Tracks the total interview time budget across all questions.
"""

from interview_recorder.core.constants import SECONDS_PER_QUESTION


class GlobalDeadlineTimer:
    """
    Total budget = seconds_per_question * total_questions, decremented once per tick
    regardless of which question phase is active. Expiry is reported exactly once.
    """

    def __init__(self, total_questions: int, seconds_per_question: int = SECONDS_PER_QUESTION):
        self.total_questions = total_questions
        self.seconds_per_question = seconds_per_question
        self.budget_seconds = total_questions * seconds_per_question
        self.remaining_seconds = self.budget_seconds
        self.elapsed_seconds = 0
        self.expired = False

    def tick(self) -> bool:
        """
        Advance one second.

        Returns:
            True only on the tick that exhausts the budget
        """
        if self.expired:
            return False
        self.elapsed_seconds += 1
        self.remaining_seconds = max(0, self.remaining_seconds - 1)
        if self.remaining_seconds == 0:
            self.expired = True
            return True
        return False
