from .brain import ConversationEngine, Reply
from .errors import (
    CatalogLoadError,
    EmptyOrderError,
    MissingUserError,
    OrderingError,
    OrderStoreError,
    SessionStateError,
)
from .sessions import SessionStore, Step

__all__ = [
    "ConversationEngine",
    "Reply",
    "SessionStore",
    "Step",
    "OrderingError",
    "EmptyOrderError",
    "MissingUserError",
    "CatalogLoadError",
    "OrderStoreError",
    "SessionStateError",
]
