"""Cashtag mentions extracted from user content."""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID


class MentionContentType(str, Enum):
    """Kinds of content that can mention a cashtag."""

    COMMENT = "comment"
    POST = "post"


# Mentions of one piece of content, for replacement on edit
MENTIONS_BY_CONTENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.cashtag_mentions_by_content (
    content_type TEXT,
    content_id UUID,
    symbol TEXT,
    user_id UUID,
    created_at TIMESTAMP,
    PRIMARY KEY ((content_type, content_id), symbol)
)
"""

# Mentions of one symbol, newest first, for symbol pages
MENTIONS_BY_SYMBOL_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.cashtag_mentions_by_symbol (
    symbol TEXT,
    created_at TIMESTAMP,
    content_type TEXT,
    content_id UUID,
    user_id UUID,
    PRIMARY KEY ((symbol), created_at, content_type, content_id)
) WITH CLUSTERING ORDER BY (created_at DESC, content_type ASC, content_id ASC)
"""

MENTIONS_TABLES_CQL = [
    MENTIONS_BY_CONTENT_TABLE_CQL,
    MENTIONS_BY_SYMBOL_TABLE_CQL,
]


@dataclass
class CashTagMention:
    """A $SYMBOL referenced by a piece of content."""

    content_type: MentionContentType
    content_id: UUID
    symbol: str
    user_id: UUID
    created_at: datetime


def create_mention(
    content_type: MentionContentType,
    content_id: UUID,
    symbol: str,
    user_id: UUID,
) -> CashTagMention:
    return CashTagMention(
        content_type=content_type,
        content_id=content_id,
        symbol=symbol.upper(),
        user_id=user_id,
        created_at=datetime.now(UTC),
    )
