"""Read access to the conversation store."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import distinct, select
from sqlalchemy.ext.asyncio import AsyncSession

from memoir.models.conversation import Conversation, Message


@dataclass
class ConversationTranscript:
    """A conversation together with its messages in chronological order."""

    id: UUID
    created_at: datetime
    messages: list[Message] = field(default_factory=list)

    @property
    def message_count(self) -> int:
        return len(self.messages)


class ConversationStore:
    """Service for reading conversations and their messages."""

    async def list_conversations(
        self,
        session: AsyncSession,
        user_id: str,
        since: datetime | None = None,
    ) -> list[Conversation]:
        """List a user's conversations, most recent first.

        Args:
            session: Database session.
            user_id: User identifier.
            since: Only include conversations created at or after this time.

        Returns:
            List of Conversation rows.
        """
        query = select(Conversation).where(Conversation.user_id == user_id)
        if since is not None:
            query = query.where(Conversation.created_at >= since)
        query = query.order_by(Conversation.created_at.desc(), Conversation.id)
        result = await session.execute(query)
        return list(result.scalars().all())

    async def get_messages(
        self,
        session: AsyncSession,
        user_id: str,
        conversation_ids: Sequence[UUID],
    ) -> list[Message]:
        """Fetch messages for the given conversations, oldest first."""
        if not conversation_ids:
            return []
        result = await session.execute(
            select(Message)
            .join(Conversation, Conversation.id == Message.conversation_id)
            .where(
                Conversation.user_id == user_id,
                Message.conversation_id.in_(list(conversation_ids)),
            )
            .order_by(Message.created_at, Message.id)
        )
        return list(result.scalars().all())

    async def get_transcripts(
        self,
        session: AsyncSession,
        user_id: str,
        conversations: Sequence[Conversation],
    ) -> list[ConversationTranscript]:
        """Group messages under their conversations, preserving the given order."""
        transcripts = {
            conv.id: ConversationTranscript(id=conv.id, created_at=conv.created_at)
            for conv in conversations
        }
        messages = await self.get_messages(session, user_id, list(transcripts))
        for message in messages:
            transcripts[message.conversation_id].messages.append(message)
        return [transcripts[conv.id] for conv in conversations]

    async def active_user_ids(self, session: AsyncSession, since: datetime) -> list[str]:
        """Users with at least one conversation created at or after ``since``."""
        result = await session.execute(
            select(distinct(Conversation.user_id))
            .where(Conversation.created_at >= since)
            .order_by(Conversation.user_id)
        )
        return [row[0] for row in result.all()]


# Global singleton instance
conversation_store = ConversationStore()
