from .models import MENTIONS_TABLES_CQL, CashTagMention, MentionContentType
from .service import MentionService, extract_cashtags, register_mention_tasks


__all__ = [
    "MENTIONS_TABLES_CQL",
    "CashTagMention",
    "MentionContentType",
    "MentionService",
    "extract_cashtags",
    "register_mention_tasks",
]
