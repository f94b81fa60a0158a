"""Submission models consumed by the sampler and the scoring oracle.

Includes: ScoredSubmission (SQL table, platform-owned), SubmissionRef and
SubmissionContext (Pydantic).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel
from sqlmodel import Field as SQLField
from sqlmodel import SQLModel

Difficulty = Literal["easy", "medium", "hard", "expert"]


class SubmissionContext(BaseModel):
    """Optional signals about how a submission was produced."""

    time_spent_minutes: float | None = None
    code_length: int | None = None  # characters
    complexity: Literal["low", "medium", "high"] | None = None


class SubmissionRef(BaseModel):
    """A previously auto-scored submission selected for re-scoring."""

    submission_id: str
    task_id: str
    user_id: str
    category: str
    difficulty: str = "medium"  # Difficulty; unknown values fall back to defaults
    original_score: float
    task_title: str = ""
    description: str = ""
    proof: str = ""
    scored_at: datetime | None = None
    context: SubmissionContext | None = None

    def task_metadata(self) -> dict:
        """Task fields handed to the scoring oracle."""
        return {
            "task_id": self.task_id,
            "title": self.task_title,
            "description": self.description,
            "category": self.category,
            "difficulty": self.difficulty,
        }


class ScoredSubmission(SQLModel, table=True):
    """Platform submission row, read by SqlSubmissionStore."""

    __tablename__ = "scored_submission"

    id: str = SQLField(default_factory=lambda: str(uuid4()), primary_key=True)
    task_id: str
    user_id: str
    category: str = SQLField(index=True)
    difficulty: str = "medium"
    task_title: str = ""
    description: str = ""
    proof: str = ""
    status: str = "scored"  # "pending" | "scored" | "rejected"
    score: float | None = None
    time_spent_minutes: float | None = None
    code_length: int | None = None
    submitted_at: datetime = SQLField(default_factory=lambda: datetime.now(timezone.utc))
    scored_at: datetime | None = None

    def to_ref(self) -> SubmissionRef:
        context = None
        if self.time_spent_minutes is not None or self.code_length is not None:
            context = SubmissionContext(
                time_spent_minutes=self.time_spent_minutes,
                code_length=self.code_length,
            )
        return SubmissionRef(
            submission_id=self.id,
            task_id=self.task_id,
            user_id=self.user_id,
            category=self.category,
            difficulty=self.difficulty,
            original_score=self.score if self.score is not None else 0.0,
            task_title=self.task_title,
            description=self.description,
            proof=self.proof,
            scored_at=self.scored_at,
            context=context,
        )
