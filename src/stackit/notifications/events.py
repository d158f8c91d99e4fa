"""Content events that trigger notification fan-out.

Every event is validated into one of these models before it reaches the
fan-out service, whether it comes from a router, a background task or an
arq job payload. ``kind`` is the discriminator.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

MentionContext = Literal["question", "answer", "comment"]
ParentType = Literal["question", "answer"]


class QuestionAnsweredEvent(BaseModel):
    """A new answer was posted. Notifies the question author, then mentions."""

    kind: Literal["question-answered"] = "question-answered"
    actor_id: int
    question_id: int
    answer_id: int
    body: str = ""


class ItemCommentedEvent(BaseModel):
    """A comment was posted on a question or answer. Notifies the parent's author."""

    kind: Literal["item-commented"] = "item-commented"
    actor_id: int
    comment_id: int
    parent_type: ParentType
    parent_id: int
    body: str = ""


class UserMentionedEvent(BaseModel):
    """Content whose only recipients are the users it mentions (e.g. a new question)."""

    kind: Literal["user-mentioned"] = "user-mentioned"
    actor_id: int
    body: str
    context: MentionContext = "question"
    question_id: int | None = None
    answer_id: int | None = None
    comment_id: int | None = None

    @model_validator(mode="after")
    def _context_has_reference(self) -> UserMentionedEvent:
        ref = {"question": self.question_id, "answer": self.answer_id, "comment": self.comment_id}[self.context]
        if ref is None:
            msg = f"{self.context}_id is required for a mention in a {self.context}"
            raise ValueError(msg)
        return self


class ItemVotedEvent(BaseModel):
    """A vote was cast on a question or answer. Only upvotes notify the author."""

    kind: Literal["item-voted"] = "item-voted"
    actor_id: int
    target_type: ParentType
    target_id: int
    value: Literal[1, -1] = 1


ContentEvent = Annotated[
    Union[QuestionAnsweredEvent, ItemCommentedEvent, UserMentionedEvent, ItemVotedEvent],
    Field(discriminator="kind"),
]

content_event_adapter: TypeAdapter[ContentEvent] = TypeAdapter(ContentEvent)


def parse_event(payload: dict) -> ContentEvent:
    """Validate a raw dict (e.g. an arq job argument) into a typed event."""
    return content_event_adapter.validate_python(payload)
