"""Interactive UI components for picking household members."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .models import Member

logger = logging.getLogger(__name__)


def fuzzy_match(query: str, text: str) -> bool:
    """
    Fuzzy match: all characters in query must appear in order in text.

    Example:
        query="al" matches "Alice"
        query="bb" matches "Bob Brown"
    """
    query_idx = 0
    for char in text:
        if query_idx < len(query) and char == query[query_idx]:
            query_idx += 1
    return query_idx == len(query)


class MemberCompleter(Completer):
    """Fuzzy search completer for household members."""

    def __init__(self, members: list[Member]):
        """Initialize the completer with the members to choose from."""
        self.members = members

        # Inactive members are labelled so they're easy to tell apart
        self.name_to_id = {}
        for member in members:
            self.name_to_id[self.label(member)] = member.id

    @staticmethod
    def label(member: Member) -> str:
        """The text shown (and typed) for a member."""
        if member.is_active:
            return member.display_name
        return f"{member.display_name} (inactive)"

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for name in self.name_to_id:
            if not query or fuzzy_match(query, name.lower()):
                yield Completion(
                    text=name,
                    start_position=-len(document.text),
                    display=name,
                )


def select_member_interactive(members: list[Member], prompt: str) -> str | None:
    """
    Interactive member selection with fuzzy search.

    Args:
        members: Members to choose from
        prompt: What the member is being picked for, e.g. "Paid by"

    Returns:
        Selected member ID, or None to cancel
    """
    if not members:
        return None

    print("   Type to search, press Enter to confirm, Ctrl+C to cancel\n")

    completer = MemberCompleter(members)
    session: PromptSession[str] = PromptSession(completer=completer)

    try:
        while True:
            result = session.prompt(f"{prompt}: ", complete_while_typing=True)

            if not result:
                return None

            member_id = completer.name_to_id.get(result.strip())
            if member_id:
                logger.info(f"User selected member: {result.strip()}")
                return member_id

            print("❌ Unknown member. Please select from the list or press Tab.")

    except KeyboardInterrupt:
        print("\n⏭️  Cancelled")
        return None
    except EOFError:
        return None


def confirm_action(message: str) -> bool:
    """
    Simple yes/no confirmation, defaulting to no.

    Returns:
        True if confirmed, False otherwise
    """
    response = input(f"{message} [y/N] ").strip().lower()
    return response in ("y", "yes")
