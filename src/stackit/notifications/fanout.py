"""Notification fan-out for newly created content.

One content event becomes zero or more notifications:

1. The direct recipient for the event kind (question author for an answer,
   parent author for a comment, content author for an upvote).
2. Every user @mentioned in the content body.

Each candidate is gated by the recipient's preferences and never targets
the actor. Each notification is written and committed on its own, so a
failed insert only loses that one candidate. The recipient's cached unread
count is invalidated and a real-time event published only after the
commit succeeds.

The content row must already be committed before fan-out starts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stackit.db.models import Answer, Notification, Question
from stackit.notifications.cache import invalidate_unread_count
from stackit.notifications.events import (
    ContentEvent,
    ItemCommentedEvent,
    ItemVotedEvent,
    QuestionAnsweredEvent,
    UserMentionedEvent,
)
from stackit.notifications.mentions import ordered_mentions
from stackit.notifications.preferences import is_enabled
from stackit.notifications.push import push_new_notification
from stackit.users.service import get_user_by_id, get_users_by_usernames

logger = structlog.get_logger()

MENTION_PLACES = {
    "question": "a question",
    "answer": "an answer",
    "comment": "a comment",
}


@dataclass
class Candidate:
    """A notification that may be written, pending the self and preference checks."""

    recipient_id: int
    type: str
    message: str
    question_id: int | None = None
    answer_id: int | None = None
    comment_id: int | None = None


@dataclass
class References:
    """Ids a mention notification links to, plus where the mention appeared."""

    context: str
    question_id: int | None = None
    answer_id: int | None = None
    comment_id: int | None = None


async def on_content_created(db: AsyncSession, redis: object | None, event: ContentEvent) -> list[int]:
    """Fan one content event out into notifications.

    Returns the ids of the notifications created, in creation order.
    Per-recipient failures are logged and skipped, never raised.
    """
    log = logger.bind(kind=event.kind, actor_id=event.actor_id)
    try:
        actor = await get_user_by_id(db, event.actor_id)
    except SQLAlchemyError:
        log.warning("actor_lookup_failed", exc_info=True)
        await db.rollback()
        actor = None
    actor_name = actor.username if actor is not None else f"user {event.actor_id}"

    created: list[int] = []

    try:
        direct, refs = await _resolve_direct(db, event, actor_name)
    except SQLAlchemyError:
        log.warning("direct_recipient_lookup_failed", exc_info=True)
        await db.rollback()
        direct, refs = None, None

    if direct is not None:
        notification_id = await _notify(db, redis, direct, event.actor_id)
        if notification_id is not None:
            created.append(notification_id)

    if refs is not None:
        for candidate in await _mention_candidates(db, event, actor_name, refs):
            notification_id = await _notify(db, redis, candidate, event.actor_id)
            if notification_id is not None:
                created.append(notification_id)

    log.info("fanout_complete", created=len(created))
    return created


async def _resolve_direct(
    db: AsyncSession,
    event: ContentEvent,
    actor_name: str,
) -> tuple[Candidate | None, References | None]:
    """Find the direct recipient for the event kind and the ids mentions should link to."""
    if isinstance(event, QuestionAnsweredEvent):
        refs = References("answer", question_id=event.question_id, answer_id=event.answer_id)
        question = await _get_question(db, event.question_id)
        if question is None:
            logger.info("UnresolvedRecipient", kind=event.kind, question_id=event.question_id)
            return None, refs
        return Candidate(
            recipient_id=question.author_id,
            type="answer",
            message=f'{actor_name} answered your question "{question.title}"',
            question_id=question.id,
            answer_id=event.answer_id,
        ), refs

    if isinstance(event, ItemCommentedEvent):
        refs = References("comment", comment_id=event.comment_id)
        if event.parent_type == "question":
            question = await _get_question(db, event.parent_id)
            if question is None:
                logger.info("UnresolvedRecipient", kind=event.kind, question_id=event.parent_id)
                return None, refs
            refs.question_id = question.id
            recipient_id = question.author_id
        else:
            answer = await _get_answer(db, event.parent_id)
            if answer is None:
                logger.info("UnresolvedRecipient", kind=event.kind, answer_id=event.parent_id)
                return None, refs
            refs.question_id = answer.question_id
            refs.answer_id = answer.id
            recipient_id = answer.author_id
        return Candidate(
            recipient_id=recipient_id,
            type="comment",
            message=f"{actor_name} commented on your {event.parent_type}",
            question_id=refs.question_id,
            answer_id=refs.answer_id,
            comment_id=event.comment_id,
        ), refs

    if isinstance(event, UserMentionedEvent):
        return None, References(
            event.context,
            question_id=event.question_id,
            answer_id=event.answer_id,
            comment_id=event.comment_id,
        )

    if isinstance(event, ItemVotedEvent):
        # Votes carry no text, so there is nothing to scan for mentions
        if event.value != 1:
            return None, None
        if event.target_type == "question":
            question = await _get_question(db, event.target_id)
            if question is None:
                logger.info("UnresolvedRecipient", kind=event.kind, question_id=event.target_id)
                return None, None
            return Candidate(
                recipient_id=question.author_id,
                type="vote",
                message=f'{actor_name} upvoted your question "{question.title}"',
                question_id=question.id,
            ), None
        answer = await _get_answer(db, event.target_id)
        if answer is None:
            logger.info("UnresolvedRecipient", kind=event.kind, answer_id=event.target_id)
            return None, None
        return Candidate(
            recipient_id=answer.author_id,
            type="vote",
            message=f"{actor_name} upvoted your answer",
            question_id=answer.question_id,
            answer_id=answer.id,
        ), None

    msg = f"Unsupported event kind: {event.kind}"
    raise ValueError(msg)


async def _mention_candidates(
    db: AsyncSession,
    event: ContentEvent,
    actor_name: str,
    refs: References,
) -> list[Candidate]:
    """Resolve @mentions in the event body to mention candidates, in order of appearance."""
    usernames = ordered_mentions(getattr(event, "body", ""))
    if not usernames:
        return []

    try:
        users = await get_users_by_usernames(db, usernames)
    except SQLAlchemyError:
        logger.warning("mention_lookup_failed", kind=event.kind, usernames=usernames, exc_info=True)
        await db.rollback()
        return []

    message = f"{actor_name} mentioned you in {MENTION_PLACES[refs.context]}"
    candidates = []
    for username in usernames:
        user = users.get(username)
        if user is None:
            logger.debug("UnresolvedRecipient", kind=event.kind, username=username)
            continue
        candidates.append(Candidate(
            recipient_id=user.id,
            type="mention",
            message=message,
            question_id=refs.question_id,
            answer_id=refs.answer_id,
            comment_id=refs.comment_id,
        ))
    return candidates


async def _notify(db: AsyncSession, redis: object | None, candidate: Candidate, actor_id: int) -> int | None:
    """Gate, write, invalidate and publish one notification. Returns its id, or None if skipped."""
    if candidate.recipient_id == actor_id:
        logger.debug("self_notification_suppressed", type=candidate.type, user_id=actor_id)
        return None

    if not await is_enabled(db, candidate.recipient_id, candidate.type):
        logger.debug("notification_disabled_by_preference", type=candidate.type, user_id=candidate.recipient_id)
        return None

    notification = Notification(
        user_id=candidate.recipient_id,
        type=candidate.type,
        message=candidate.message,
        question_id=candidate.question_id,
        answer_id=candidate.answer_id,
        comment_id=candidate.comment_id,
        actor_user_id=actor_id,
        is_read=False,
        created_at=datetime.now(timezone.utc),
    )
    try:
        db.add(notification)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.warning(
            "NotificationWriteFailure",
            type=candidate.type,
            user_id=candidate.recipient_id,
            exc_info=True,
        )
        return None

    await invalidate_unread_count(redis, candidate.recipient_id)
    await push_new_notification(redis, notification)
    return notification.id


async def _get_question(db: AsyncSession, question_id: int) -> Question | None:
    result = await db.execute(select(Question).where(Question.id == question_id))
    return result.scalar_one_or_none()


async def _get_answer(db: AsyncSession, answer_id: int) -> Answer | None:
    result = await db.execute(select(Answer).where(Answer.id == answer_id))
    return result.scalar_one_or_none()
