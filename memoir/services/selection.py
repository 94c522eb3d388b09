"""Selection of the conversations a job should examine."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from memoir.config import settings
from memoir.models.conversation import Conversation
from memoir.services.conversations import ConversationStore, conversation_store
from memoir.services.ledger import AnalysisLedger, analysis_ledger

logger = logging.getLogger(__name__)


@dataclass
class ConversationSelection:
    """Unprocessed conversations for a user and the batch taken from them."""

    total_conversations: int
    processed_count: int
    unprocessed: list[Conversation]
    batch: list[Conversation]

    @property
    def unprocessed_count(self) -> int:
        return len(self.unprocessed)

    @property
    def batch_ids(self) -> list[UUID]:
        return [conv.id for conv in self.batch]


class ConversationSelector:
    """Computes ``all conversations - ledgered conversations`` for a user.

    This is a set difference recomputed on every call, not a cursor, so a job
    interrupted mid-batch leaves nothing to repair: its unledgered
    conversations simply show up again.
    """

    def __init__(
        self,
        store: ConversationStore = conversation_store,
        ledger: AnalysisLedger = analysis_ledger,
        delay_seconds: float = settings.memoir_selection_delay_seconds,
        lookback_days: int | None = settings.memoir_conversation_lookback_days,
    ):
        self._store = store
        self._ledger = ledger
        self._delay_seconds = delay_seconds
        self._lookback_days = lookback_days

    async def select(
        self,
        session: AsyncSession,
        user_id: str,
        batch_size: int,
        lookback_days: int | None = None,
    ) -> ConversationSelection:
        """Compute the unprocessed set and the next batch, most recent first.

        Args:
            session: Database session.
            user_id: User identifier.
            batch_size: Maximum conversations in the batch.
            lookback_days: Override the conversation window in days (None uses the default).

        Returns:
            ConversationSelection with the full unprocessed list and the batch.
        """
        # Let ledger writes from a just-finished job settle
        if self._delay_seconds > 0:
            await asyncio.sleep(self._delay_seconds)

        days = lookback_days if lookback_days is not None else self._lookback_days
        since = datetime.utcnow() - timedelta(days=days) if days is not None else None

        conversations = await self._store.list_conversations(session, user_id, since=since)
        processed_ids = await self._ledger.processed_conversation_ids(session, user_id)
        unprocessed = [conv for conv in conversations if conv.id not in processed_ids]

        selection = ConversationSelection(
            total_conversations=len(conversations),
            processed_count=len(processed_ids),
            unprocessed=unprocessed,
            batch=unprocessed[: max(batch_size, 0)],
        )
        logger.debug(
            "Selected %d of %d unprocessed conversations for user %s (%d total, %d ledgered)",
            len(selection.batch),
            selection.unprocessed_count,
            user_id,
            selection.total_conversations,
            selection.processed_count,
        )
        return selection


# Global singleton instance
conversation_selector = ConversationSelector()
