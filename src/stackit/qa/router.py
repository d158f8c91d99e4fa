"""Q&A API endpoints: questions, answers, comments, votes.

Every write commits the content first and only then dispatches the
notification event, so fan-out can never roll back the content.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stackit.auth.dependencies import get_current_user
from stackit.database import get_session
from stackit.db.models import Answer, Comment, Question, User
from stackit.notifications.dispatch import dispatch_content_event
from stackit.notifications.events import (
    ItemCommentedEvent,
    ItemVotedEvent,
    QuestionAnsweredEvent,
    UserMentionedEvent,
)
from stackit.notifications.mentions import extract_mentions
from stackit.qa.schemas import (
    AnswerResponse,
    AuthorResponse,
    CommentResponse,
    CreateAnswerRequest,
    CreateCommentRequest,
    CreateQuestionRequest,
    QuestionDetailResponse,
    QuestionListResponse,
    QuestionResponse,
    TagResponse,
    VoteRequest,
    VoteResponse,
)
from stackit.qa.service import (
    accept_answer,
    cast_vote,
    create_answer,
    create_comment,
    create_question,
    get_answers,
    get_comments,
    get_question,
    list_questions,
    list_tags,
    record_view,
    search_questions,
)

router = APIRouter(prefix="/api/v1", tags=["Q&A"])


def _author(user: User) -> AuthorResponse:
    return AuthorResponse(id=user.id, username=user.username)


def _question_response(q: Question, author: User) -> QuestionResponse:
    return QuestionResponse(
        id=q.id,
        title=q.title,
        body=q.body,
        author=_author(author),
        tags=[t.name for t in q.tags],
        vote_count=q.vote_count,
        view_count=q.view_count,
        accepted_answer_id=q.accepted_answer_id,
        created_at=q.created_at,
    )


def _answer_response(a: Answer, author: User, comments: list[Comment] | None = None) -> AnswerResponse:
    return AnswerResponse(
        id=a.id,
        question_id=a.question_id,
        author=_author(author),
        body=a.body,
        vote_count=a.vote_count,
        is_accepted=a.is_accepted,
        created_at=a.created_at,
        comments=[_comment_response(c, c.author) for c in comments or []],
    )


def _comment_response(c: Comment, author: User) -> CommentResponse:
    return CommentResponse(
        id=c.id,
        parent_type=c.parent_type,
        parent_id=c.parent_id,
        author=_author(author),
        body=c.body,
        created_at=c.created_at,
    )


# --- Questions ---


@router.post("/questions", response_model=QuestionResponse, status_code=201)
async def post_question(
    body: CreateQuestionRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Ask a question. Users @mentioned in the body are notified."""
    try:
        question = await create_question(db, user.id, body.title, body.body, body.tags)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()

    if extract_mentions(question.body):
        await dispatch_content_event(
            UserMentionedEvent(
                actor_id=user.id,
                body=question.body,
                context="question",
                question_id=question.id,
            ),
            background_tasks,
        )
    return _question_response(question, user)


@router.get("/questions", response_model=QuestionListResponse)
async def get_questions(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    tag: str | None = Query(None, max_length=32),
    db: AsyncSession = Depends(get_session),
):
    """List questions, newest first."""
    questions, total = await list_questions(db, page, per_page, tag)
    return QuestionListResponse(
        questions=[_question_response(q, q.author) for q in questions],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/search", response_model=QuestionListResponse)
async def search(
    q: str = Query("", max_length=200),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
):
    """Search question titles, bodies and tags. A blank query returns nothing."""
    questions, total = await search_questions(db, q, page, per_page)
    return QuestionListResponse(
        questions=[_question_response(question, question.author) for question in questions],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/tags", response_model=list[TagResponse])
async def get_tags(db: AsyncSession = Depends(get_session)):
    """All tags in use, most used first."""
    return [TagResponse(name=name, count=n) for name, n in await list_tags(db)]


@router.get("/questions/{question_id}", response_model=QuestionDetailResponse)
async def get_question_detail(
    question_id: int,
    db: AsyncSession = Depends(get_session),
):
    """Question with its answers and comments. Counts a view."""
    question = await get_question(db, question_id)
    if question is None:
        raise HTTPException(status_code=404, detail="Question not found")
    await record_view(db, question_id)
    await db.commit()
    await db.refresh(question)

    answers = await get_answers(db, question_id)
    answer_responses = [
        _answer_response(a, a.author, await get_comments(db, "answer", a.id))
        for a in answers
    ]
    question_comments = await get_comments(db, "question", question_id)

    base = _question_response(question, question.author)
    return QuestionDetailResponse(
        **base.model_dump(),
        answers=answer_responses,
        comments=[_comment_response(c, c.author) for c in question_comments],
    )


# --- Answers ---


@router.post("/questions/{question_id}/answers", response_model=AnswerResponse, status_code=201)
async def post_answer(
    question_id: int,
    body: CreateAnswerRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Answer a question. Notifies the question author and any @mentioned users."""
    answer = await create_answer(db, question_id, user.id, body.body)
    await db.commit()

    await dispatch_content_event(
        QuestionAnsweredEvent(
            actor_id=user.id,
            question_id=question_id,
            answer_id=answer.id,
            body=answer.body,
        ),
        background_tasks,
    )
    return _answer_response(answer, user)


@router.post("/answers/{answer_id}/accept", response_model=AnswerResponse)
async def post_accept_answer(
    answer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Accept an answer (question author only)."""
    answer = await accept_answer(db, answer_id, user.id)
    await db.commit()
    return _answer_response(answer, answer.author)


# --- Comments ---


@router.post("/comments", response_model=CommentResponse, status_code=201)
async def post_comment(
    body: CreateCommentRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Comment on a question or answer. Notifies the parent's author and @mentioned users."""
    comment = await create_comment(db, user.id, body.parent_type, body.parent_id, body.body)
    await db.commit()

    await dispatch_content_event(
        ItemCommentedEvent(
            actor_id=user.id,
            comment_id=comment.id,
            parent_type=body.parent_type,
            parent_id=body.parent_id,
            body=comment.body,
        ),
        background_tasks,
    )
    return _comment_response(comment, user)


# --- Votes ---


@router.post("/votes", response_model=VoteResponse)
async def post_vote(
    body: VoteRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Upvote or downvote a question or answer. New upvotes notify the author."""
    vote_count, changed = await cast_vote(db, user.id, body.target_type, body.target_id, body.value)
    await db.commit()

    if changed and body.value == 1:
        await dispatch_content_event(
            ItemVotedEvent(
                actor_id=user.id,
                target_type=body.target_type,
                target_id=body.target_id,
                value=body.value,
            ),
            background_tasks,
        )
    return VoteResponse(
        target_type=body.target_type,
        target_id=body.target_id,
        vote_count=vote_count,
        changed=changed,
    )
