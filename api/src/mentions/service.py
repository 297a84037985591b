# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Cashtag mention extraction and storage.

Runs as background tasks queued after a comment is created or edited.
"""

import re
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.tasks.models import TaskName

from .models import CashTagMention, MentionContentType, create_mention


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from src.tasks.worker import TaskWorker


logger = structlog.get_logger(__name__)

# $AAPL, $brk.b; not $100 or $5.99 (must start with a letter)
CASHTAG_PATTERN = re.compile(r"(?<![\w$])\$([A-Za-z]{1,5}(?:\.[A-Za-z])?)(?![\w.])")


def extract_cashtags(text: str) -> list[str]:
    """Extract upper-cased cashtag symbols in order of first appearance."""
    symbols = (match.group(1).upper() for match in CASHTAG_PATTERN.finditer(text))
    return list(dict.fromkeys(symbols))


class MentionService:
    """Persists cashtag mentions for comments and posts."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._insert_by_content = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.cashtag_mentions_by_content
            (content_type, content_id, symbol, user_id, created_at)
            VALUES (?, ?, ?, ?, ?)
        """)

        self._insert_by_symbol = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.cashtag_mentions_by_symbol
            (symbol, created_at, content_type, content_id, user_id)
            VALUES (?, ?, ?, ?, ?)
        """)

        self._get_by_content = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.cashtag_mentions_by_content
            WHERE content_type = ? AND content_id = ?
        """)

        self._delete_by_content = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.cashtag_mentions_by_content
            WHERE content_type = ? AND content_id = ?
        """)

        self._delete_by_symbol = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.cashtag_mentions_by_symbol
            WHERE symbol = ? AND created_at = ? AND content_type = ? AND content_id = ?
        """)

    async def create_content_mentions(
        self,
        content_id: UUID,
        content_type: MentionContentType,
        user_id: UUID,
        text: str,
    ) -> list[CashTagMention]:
        """Record every cashtag in the text."""
        mentions = [
            create_mention(content_type, content_id, symbol, user_id)
            for symbol in extract_cashtags(text)
        ]

        for mention in mentions:
            await self.session.aexecute(
                self._insert_by_content,
                [
                    mention.content_type.value,
                    mention.content_id,
                    mention.symbol,
                    mention.user_id,
                    mention.created_at,
                ],
            )
            await self.session.aexecute(
                self._insert_by_symbol,
                [
                    mention.symbol,
                    mention.created_at,
                    mention.content_type.value,
                    mention.content_id,
                    mention.user_id,
                ],
            )

        logger.info(
            "cashtag_mentions_created",
            content_type=content_type.value,
            content_id=str(content_id),
            symbols=[m.symbol for m in mentions],
        )
        return mentions

    async def update_content_mentions(
        self,
        content_id: UUID,
        content_type: MentionContentType,
        user_id: UUID,
        text: str,
    ) -> list[CashTagMention]:
        """Replace the content's mentions with those in the edited text."""
        existing = await self.session.aexecute(
            self._get_by_content, [content_type.value, content_id]
        )
        for row in existing:
            await self.session.aexecute(
                self._delete_by_symbol,
                [row.symbol, row.created_at, content_type.value, content_id],
            )
        await self.session.aexecute(
            self._delete_by_content, [content_type.value, content_id]
        )

        return await self.create_content_mentions(content_id, content_type, user_id, text)


def register_mention_tasks(worker: "TaskWorker", service: MentionService) -> None:
    """Bind the mention task names to the service.

    Task payloads are JSON, so identifiers arrive as strings.
    """

    async def create_mentions(
        content_id: str, content_type: str, user_id: str, text: str
    ) -> None:
        await service.create_content_mentions(
            UUID(content_id), MentionContentType(content_type), UUID(user_id), text
        )

    async def update_mentions(
        content_id: str, content_type: str, user_id: str, text: str
    ) -> None:
        await service.update_content_mentions(
            UUID(content_id), MentionContentType(content_type), UUID(user_id), text
        )

    worker.register(TaskName.CREATE_CONTENT_CASHTAG_MENTIONS, create_mentions)
    worker.register(TaskName.UPDATE_CONTENT_CASHTAG_MENTIONS, update_mentions)
