from .reactions import ReactionChange, toggle_reaction
from .session_window import compute_session_window, ensure_utc, format_remaining

__all__ = [
    "ReactionChange",
    "compute_session_window",
    "ensure_utc",
    "format_remaining",
    "toggle_reaction",
]
