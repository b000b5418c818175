"""Group messages into conversations between a user and nonprofits."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from .models import Message, Nonprofit

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class Conversation:
    id: str
    nonprofit_id: str
    nonprofit: Optional[Nonprofit] = None
    messages: list[Message] = field(default_factory=list)
    is_new: bool = False

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    @property
    def last_activity(self) -> datetime:
        last = self.last_message
        return last.created_at if last and last.created_at else _EPOCH


def conversation_id_for(user_id: str, nonprofit_id: str) -> str:
    return f"conv_{user_id}_{nonprofit_id}"


def recipient_for(nonprofit: Nonprofit) -> str:
    """Who receives messages addressed to a nonprofit."""
    return nonprofit.admin_user_id or f"nonprofit_{nonprofit.id}"


def build_conversations(messages: Iterable[Message], user_id: str,
                        nonprofits: dict[str, Nonprofit],
                        start_with: Optional[str] = None) -> list[Conversation]:
    """Conversations the user takes part in, most recent first.

    `start_with` is a nonprofit id; if the user has no conversation with it
    yet an empty one is created and placed first.
    """
    by_id: dict[str, Conversation] = {}
    for msg in messages:
        if user_id not in (msg.sender_id, msg.recipient_id):
            continue
        convo = by_id.get(msg.conversation_id)
        if convo is None:
            convo = Conversation(
                id=msg.conversation_id,
                nonprofit_id=msg.nonprofit_id,
                nonprofit=nonprofits.get(msg.nonprofit_id),
            )
            by_id[msg.conversation_id] = convo
        convo.messages.append(msg)

    if start_with and start_with in nonprofits:
        convo_id = conversation_id_for(user_id, start_with)
        if convo_id not in by_id:
            by_id[convo_id] = Conversation(
                id=convo_id,
                nonprofit_id=start_with,
                nonprofit=nonprofits[start_with],
                is_new=True,
            )

    for convo in by_id.values():
        convo.messages.sort(key=lambda m: m.created_at or _EPOCH)

    conversations = sorted(by_id.values(), key=lambda c: c.last_activity, reverse=True)
    conversations.sort(key=lambda c: not c.is_new)
    return conversations
