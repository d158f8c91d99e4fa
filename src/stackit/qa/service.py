"""Q&A content business logic.

Rules:
- Tags are lowercased, deduplicated, at most 5 per question
- Only the question author may accept an answer; accepting unsets siblings
- One vote per user per target; re-casting the same value is a no-op,
  the opposite value flips it
- Users cannot vote on their own content

Functions flush but never commit; routers commit and then dispatch the
notification event.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stackit.db.models import Answer, Comment, Question, Tag, Vote, question_tags
from stackit.errors import ContentNotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)

MAX_TAGS = 5


def normalize_tags(tags: list[str]) -> list[str]:
    """Lowercase, strip and dedupe tag names, keeping first-seen order."""
    names = [t.strip().lower() for t in tags if t and t.strip()]
    names = list(dict.fromkeys(names))
    if len(names) > MAX_TAGS:
        msg = f"A question can have at most {MAX_TAGS} tags"
        raise ValueError(msg)
    return names


async def _get_or_create_tags(db: AsyncSession, names: list[str]) -> list[Tag]:
    if not names:
        return []
    result = await db.execute(select(Tag).where(Tag.name.in_(names)))
    existing = {tag.name: tag for tag in result.scalars().all()}
    tags = []
    for name in names:
        tag = existing.get(name)
        if tag is None:
            tag = Tag(name=name)
            db.add(tag)
        tags.append(tag)
    return tags


async def create_question(
    db: AsyncSession,
    author_id: int,
    title: str,
    body: str,
    tags: list[str],
) -> Question:
    """Create a question with its tag set."""
    question = Question(
        title=title,
        body=body,
        author_id=author_id,
        vote_count=0,
        view_count=0,
        created_at=datetime.now(timezone.utc),
    )
    question.tags = await _get_or_create_tags(db, normalize_tags(tags))
    db.add(question)
    await db.flush()
    return question


async def get_question(db: AsyncSession, question_id: int) -> Question | None:
    """Get a question by ID."""
    result = await db.execute(select(Question).where(Question.id == question_id))
    return result.scalar_one_or_none()


async def record_view(db: AsyncSession, question_id: int) -> None:
    await db.execute(
        update(Question)
        .where(Question.id == question_id)
        .values(view_count=Question.view_count + 1)
    )
    await db.flush()


async def list_questions(
    db: AsyncSession,
    page: int = 1,
    per_page: int = 20,
    tag: str | None = None,
) -> tuple[list[Question], int]:
    """List questions (paginated, most recent first), optionally filtered by tag."""
    query = select(Question)
    count_query = select(func.count()).select_from(Question)
    if tag:
        tag_filter = Question.id.in_(
            select(question_tags.c.question_id)
            .join(Tag, Tag.id == question_tags.c.tag_id)
            .where(Tag.name == tag.strip().lower())
        )
        query = query.where(tag_filter)
        count_query = count_query.where(tag_filter)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        query.order_by(Question.created_at.desc(), Question.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def search_questions(
    db: AsyncSession,
    q: str,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Question], int]:
    """Case-insensitive substring search over title, body and tag names.

    A blank query matches nothing. LIKE wildcards in the query are literal.
    """
    term = q.strip()
    if not term:
        return [], 0

    match = (
        Question.title.icontains(term, autoescape=True)
        | Question.body.icontains(term, autoescape=True)
        | Question.id.in_(
            select(question_tags.c.question_id)
            .join(Tag, Tag.id == question_tags.c.tag_id)
            .where(Tag.name.icontains(term, autoescape=True))
        )
    )
    total = (await db.execute(select(func.count()).select_from(Question).where(match))).scalar_one()
    result = await db.execute(
        select(Question)
        .where(match)
        .order_by(Question.created_at.desc(), Question.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def list_tags(db: AsyncSession) -> list[tuple[str, int]]:
    """Tag names with their question counts, most used first."""
    uses = func.count(question_tags.c.question_id).label("uses")
    result = await db.execute(
        select(Tag.name, uses)
        .join(question_tags, Tag.id == question_tags.c.tag_id)
        .group_by(Tag.id, Tag.name)
        .order_by(uses.desc(), Tag.name.asc())
    )
    return [(name, n) for name, n in result.all()]


async def get_answers(db: AsyncSession, question_id: int) -> list[Answer]:
    """Answers to a question: accepted first, then by votes, then oldest first."""
    result = await db.execute(
        select(Answer)
        .where(Answer.question_id == question_id)
        .order_by(Answer.is_accepted.desc(), Answer.vote_count.desc(), Answer.created_at.asc())
    )
    return list(result.scalars().all())


async def get_answer(db: AsyncSession, answer_id: int) -> Answer | None:
    result = await db.execute(select(Answer).where(Answer.id == answer_id))
    return result.scalar_one_or_none()


async def create_answer(db: AsyncSession, question_id: int, author_id: int, body: str) -> Answer:
    """Post an answer to an existing question."""
    if await get_question(db, question_id) is None:
        msg = f"Question {question_id} not found"
        raise ContentNotFoundError(msg)

    answer = Answer(
        question_id=question_id,
        author_id=author_id,
        body=body,
        vote_count=0,
        is_accepted=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(answer)
    await db.flush()
    return answer


async def accept_answer(db: AsyncSession, answer_id: int, user_id: int) -> Answer:
    """Mark an answer as the accepted one for its question.

    Unsets every sibling first so at most one answer is accepted.
    """
    answer = await get_answer(db, answer_id)
    if answer is None:
        msg = f"Answer {answer_id} not found"
        raise ContentNotFoundError(msg)

    question = await get_question(db, answer.question_id)
    if question is None:
        msg = f"Question {answer.question_id} not found"
        raise ContentNotFoundError(msg)
    if question.author_id != user_id:
        msg = "Only the question author can accept an answer"
        raise PermissionDeniedError(msg)

    await db.execute(
        update(Answer)
        .where(Answer.question_id == question.id, Answer.id != answer.id)
        .values(is_accepted=False)
    )
    answer.is_accepted = True
    question.accepted_answer_id = answer.id
    await db.flush()
    logger.info("Answer %d accepted for question %d", answer.id, question.id)
    return answer


async def _get_parent(db: AsyncSession, parent_type: str, parent_id: int) -> Question | Answer | None:
    if parent_type == "question":
        return await get_question(db, parent_id)
    if parent_type == "answer":
        return await get_answer(db, parent_id)
    msg = f"Invalid parent type: {parent_type}"
    raise ValueError(msg)


async def create_comment(
    db: AsyncSession,
    author_id: int,
    parent_type: str,
    parent_id: int,
    body: str,
) -> Comment:
    """Comment on a question or an answer."""
    if await _get_parent(db, parent_type, parent_id) is None:
        msg = f"{parent_type.capitalize()} {parent_id} not found"
        raise ContentNotFoundError(msg)

    comment = Comment(
        parent_type=parent_type,
        parent_id=parent_id,
        author_id=author_id,
        body=body,
        created_at=datetime.now(timezone.utc),
    )
    db.add(comment)
    await db.flush()
    return comment


async def get_comments(db: AsyncSession, parent_type: str, parent_id: int) -> list[Comment]:
    result = await db.execute(
        select(Comment)
        .where(Comment.parent_type == parent_type, Comment.parent_id == parent_id)
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    return list(result.scalars().all())


async def cast_vote(
    db: AsyncSession,
    user_id: int,
    target_type: str,
    target_id: int,
    value: int,
) -> tuple[int, bool]:
    """Cast or flip a vote. Returns (new vote_count, whether anything changed)."""
    if value not in (1, -1):
        msg = "Vote value must be 1 or -1"
        raise ValueError(msg)

    target = await _get_parent(db, target_type, target_id)
    if target is None:
        msg = f"{target_type.capitalize()} {target_id} not found"
        raise ContentNotFoundError(msg)
    if target.author_id == user_id:
        msg = "You cannot vote on your own content"
        raise PermissionDeniedError(msg)

    result = await db.execute(
        select(Vote).where(
            Vote.user_id == user_id,
            Vote.target_type == target_type,
            Vote.target_id == target_id,
        )
    )
    vote = result.scalar_one_or_none()

    if vote is not None and vote.value == value:
        return target.vote_count, False

    if vote is None:
        db.add(Vote(
            user_id=user_id,
            target_type=target_type,
            target_id=target_id,
            value=value,
            created_at=datetime.now(timezone.utc),
        ))
        delta = value
    else:
        # Flipping removes the old vote and applies the new one
        delta = value - vote.value
        vote.value = value

    # Incremented in SQL, never read-modify-write
    model = type(target)
    await db.execute(
        update(model)
        .where(model.id == target_id)
        .values(vote_count=model.vote_count + delta),
        execution_options={"synchronize_session": False},
    )
    await db.refresh(target, ["vote_count"])
    return target.vote_count, True
