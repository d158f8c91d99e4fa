"""Pydantic schemas for Q&A endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class CreateQuestionRequest(BaseModel):
    title: str = Field(..., min_length=5, max_length=256)
    body: str = Field(..., min_length=1, max_length=50_000)
    tags: list[str] = Field(default_factory=list, max_length=5)


class CreateAnswerRequest(BaseModel):
    body: str = Field(..., min_length=1, max_length=50_000)


class CreateCommentRequest(BaseModel):
    parent_type: Literal["question", "answer"]
    parent_id: int
    body: str = Field(..., min_length=1, max_length=5_000)


class VoteRequest(BaseModel):
    target_type: Literal["question", "answer"]
    target_id: int
    value: Literal[1, -1]


class VoteResponse(BaseModel):
    target_type: str
    target_id: int
    vote_count: int
    changed: bool


class AuthorResponse(BaseModel):
    id: int
    username: str


class CommentResponse(BaseModel):
    id: int
    parent_type: str
    parent_id: int
    author: AuthorResponse
    body: str
    created_at: datetime


class AnswerResponse(BaseModel):
    id: int
    question_id: int
    author: AuthorResponse
    body: str
    vote_count: int
    is_accepted: bool
    created_at: datetime
    comments: list[CommentResponse] = []


class QuestionResponse(BaseModel):
    id: int
    title: str
    body: str
    author: AuthorResponse
    tags: list[str]
    vote_count: int
    view_count: int
    accepted_answer_id: int | None = None
    created_at: datetime


class QuestionDetailResponse(QuestionResponse):
    answers: list[AnswerResponse] = []
    comments: list[CommentResponse] = []


class QuestionListResponse(BaseModel):
    questions: list[QuestionResponse]
    total: int
    page: int
    per_page: int


class TagResponse(BaseModel):
    name: str
    count: int
