"""
Abstract Recording Store Module
Defines the interface for interview/candidate metadata and recording persistence.
"""

from abc import ABC, abstractmethod
from typing import List

from interview_recorder.core.models import (
    CandidateData,
    CreateInterviewRequest,
    InterviewData,
    RecordingRecord,
    RegisterCandidateRequest,
)


class RecordingStore(ABC):
    """
    Abstract base class for recording stores.
    Implementations: JsonRecordingStore

    save_recording must tolerate late and out-of-order arrival: a recording for
    a question index that already has one replaces it.
    """

    @abstractmethod
    async def get_interview(self, interview_id: str) -> InterviewData:
        """
        Fetch an interview definition.

        Raises:
            NotFoundError: If the interview does not exist
        """
        pass

    @abstractmethod
    async def get_candidate(self, interview_id: str, candidate_id: str) -> CandidateData:
        """
        Fetch a candidate and their fixed question order.

        Raises:
            NotFoundError: If the candidate does not exist
        """
        pass

    @abstractmethod
    async def save_recording(self, interview_id: str, candidate_id: str, record: RecordingRecord):
        """Persist recording metadata, replacing any record for the same question index."""
        pass

    @abstractmethod
    async def get_recordings(self, interview_id: str, candidate_id: str) -> List[RecordingRecord]:
        """Return saved recordings ordered by question index."""
        pass

    @abstractmethod
    async def create_interview(self, request: CreateInterviewRequest) -> InterviewData:
        pass

    @abstractmethod
    async def create_candidate(
        self,
        interview_id: str,
        request: RegisterCandidateRequest,
        question_order: List[int]
    ) -> CandidateData:
        pass
