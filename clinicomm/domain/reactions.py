"""
Toggle semantics for reactions sent from the clinic side.

Each party (a clinic user or the lead) holds at most one reaction per message:
reacting with the same emoji again removes it, a different emoji replaces it.
"""

from datetime import UTC, datetime
from enum import Enum


class ReactionChange(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"

    @property
    def description(self) -> str:
        return {
            ReactionChange.ADDED: "Reaction added successfully",
            ReactionChange.UPDATED: "Reaction updated",
            ReactionChange.REMOVED: "Reaction removed",
        }[self]


def _party_of(entry: dict) -> tuple[str, str | None]:
    if entry.get("user_id"):
        return "user", entry["user_id"]
    return "lead", entry.get("lead_id")


def toggle_reaction(
    reactions: list[dict],
    emoji: str,
    *,
    user_id: str | None = None,
    lead_id: str | None = None,
    now: datetime | None = None,
) -> tuple[list[dict], ReactionChange]:
    """
    Apply one reaction from a party to a message's reaction list.

    Exactly one of user_id or lead_id identifies the reacting party. The input
    list is not mutated; a new list is returned together with the change.

    Raises:
        ValueError: If emoji is empty or the party is not identified exactly once
    """
    if not emoji:
        raise ValueError("emoji is required")
    if bool(user_id) == bool(lead_id):
        raise ValueError("Exactly one of user_id or lead_id must be given")

    party = ("user", user_id) if user_id else ("lead", lead_id)
    added_at = (now or datetime.now(UTC)).isoformat()

    updated: list[dict] = []
    change: ReactionChange | None = None
    for entry in reactions:
        if _party_of(entry) != party:
            updated.append(dict(entry))
            continue
        if change is not None:
            # Drop duplicates left by older writers
            continue
        if entry.get("emoji") == emoji:
            change = ReactionChange.REMOVED
        else:
            change = ReactionChange.UPDATED
            updated.append({**entry, "emoji": emoji, "added_at": added_at})

    if change is None:
        entry = {"emoji": emoji, "added_at": added_at}
        if user_id:
            entry["user_id"] = user_id
        else:
            entry["lead_id"] = lead_id
        updated.append(entry)
        change = ReactionChange.ADDED

    return updated, change
