from .enums import Channel, ConversationStatus, Direction, MessageKind, MessageStatus
from .schemas import (
    ConversationPage,
    ConversationSummary,
    MessageGroup,
    MessageHistoryPage,
    MessageOut,
    Pagination,
    PartyRef,
    PopulatedMessage,
    ReactionEntry,
    SessionWindow,
)
from .tables import (
    ALL_MODELS,
    Conversation,
    ConversationUnread,
    Lead,
    Message,
    Provider,
    Template,
)

__all__ = [
    "ALL_MODELS",
    "Channel",
    "Conversation",
    "ConversationPage",
    "ConversationStatus",
    "ConversationSummary",
    "ConversationUnread",
    "Direction",
    "Lead",
    "Message",
    "MessageGroup",
    "MessageHistoryPage",
    "MessageKind",
    "MessageOut",
    "MessageStatus",
    "Pagination",
    "PartyRef",
    "PopulatedMessage",
    "Provider",
    "ReactionEntry",
    "SessionWindow",
    "Template",
]
