"""Pydantic schemas for the verification quiz."""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field


class QuizQuestion(BaseModel):
	id: int
	prompt: str
	options: List[str]


class QuizResponse(BaseModel):
	questions: List[QuizQuestion]
	required_correct: int
	remaining_attempts: int
	locked: bool
	verified: bool


class QuizSubmission(BaseModel):
	answers: Dict[int, int] = Field(..., description="question id -> chosen option index")


class QuizResult(BaseModel):
	passed: bool
	correct: int
	required: int
	remaining_attempts: int
	locked: bool
	status: str
