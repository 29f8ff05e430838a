"""
Interview Flow Modules
Per-question timer, global deadline, ticker and the flow controller that drives them.
"""

from .controller import InterviewFlowController
from .deadline import GlobalDeadlineTimer
from .question_timer import QuestionTimer, compute_countdown_seconds
from .ticker import Ticker

__all__ = [
    'InterviewFlowController',
    'GlobalDeadlineTimer',
    'QuestionTimer',
    'compute_countdown_seconds',
    'Ticker',
]
