"""
JSON Recording Store
File-backed recording store for single-node deployments and local development.
"""

import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from interview_recorder.core.errors import NotFoundError, StorageError
from interview_recorder.core.models import (
    CandidateData,
    CreateInterviewRequest,
    InterviewData,
    RecordingRecord,
    RegisterCandidateRequest,
)
from interview_recorder.storage.base_store import RecordingStore

logger = logging.getLogger(__name__)


def _empty_document() -> Dict[str, Any]:
    return {"interviews": {}, "candidates": {}, "recordings": {}}


def _candidate_key(interview_id: str, candidate_id: str) -> str:
    return f"{interview_id}/{candidate_id}"


class JsonRecordingStore(RecordingStore):
    """
    Keeps the whole document in memory and rewrites the file after each change.
    With path=None nothing is written to disk.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self._lock = asyncio.Lock()
        self._data = self._load()

    def _load(self) -> Dict[str, Any]:
        if self.path is None or not self.path.exists():
            return _empty_document()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt store file {self.path}: {e}; starting empty")
            return _empty_document()
        for key, value in _empty_document().items():
            data.setdefault(key, value)
        return data

    def _write(self, payload: str):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(self.path)

    async def _persist(self):
        if self.path is None:
            return
        payload = json.dumps(self._data, indent=2)
        try:
            await asyncio.to_thread(self._write, payload)
        except OSError as e:
            raise StorageError(f"Failed to write store file {self.path}: {e}") from e

    async def get_interview(self, interview_id: str) -> InterviewData:
        doc = self._data["interviews"].get(interview_id)
        if doc is None:
            raise NotFoundError(f"Interview {interview_id} not found")
        return InterviewData.model_validate(doc)

    async def get_candidate(self, interview_id: str, candidate_id: str) -> CandidateData:
        doc = self._data["candidates"].get(_candidate_key(interview_id, candidate_id))
        if doc is None:
            raise NotFoundError(f"Candidate {candidate_id} not found for interview {interview_id}")
        return CandidateData.model_validate(doc)

    async def save_recording(self, interview_id: str, candidate_id: str, record: RecordingRecord):
        key = _candidate_key(interview_id, candidate_id)
        async with self._lock:
            existing = self._data["recordings"].get(key, [])
            kept = [r for r in existing if r.get("question_index") != record.question_index]
            kept.append(record.model_dump())
            kept.sort(key=lambda r: r["question_index"])
            self._data["recordings"][key] = kept
            await self._persist()
        logger.info(f"Saved recording {key} question {record.question_index}")

    async def get_recordings(self, interview_id: str, candidate_id: str) -> List[RecordingRecord]:
        docs = self._data["recordings"].get(_candidate_key(interview_id, candidate_id), [])
        return [RecordingRecord.model_validate(d) for d in docs]

    async def create_interview(self, request: CreateInterviewRequest) -> InterviewData:
        interview = InterviewData(interview_id=uuid.uuid4().hex[:12], **request.model_dump())
        async with self._lock:
            self._data["interviews"][interview.interview_id] = interview.model_dump()
            await self._persist()
        logger.info(f"Created interview {interview.interview_id} ({len(interview.questions)} questions)")
        return interview

    async def create_candidate(
        self,
        interview_id: str,
        request: RegisterCandidateRequest,
        question_order: List[int]
    ) -> CandidateData:
        await self.get_interview(interview_id)
        candidate = CandidateData(
            candidate_id=uuid.uuid4().hex[:12],
            interview_id=interview_id,
            question_order=question_order,
            **request.model_dump()
        )
        async with self._lock:
            key = _candidate_key(interview_id, candidate.candidate_id)
            self._data["candidates"][key] = candidate.model_dump()
            await self._persist()
        logger.info(f"Registered candidate {candidate.candidate_id} for interview {interview_id}")
        return candidate
