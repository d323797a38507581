"""Interactive prompts for the fairshare CLI."""

import logging
from collections.abc import Sequence
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document
from prompt_toolkit.validation import ValidationError, Validator

from .splits import PERCENT_TOTAL, validate_percentages

logger = logging.getLogger(__name__)


class MemberCompleter(Completer):
    """Fuzzy search completer for group member ids."""

    def __init__(self, members: Sequence[str]):
        """Initialize the completer with the group's members."""
        self.members = list(members)

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for member_id in self.members:
            if not query or self._fuzzy_match(query, member_id.lower()):
                yield Completion(
                    text=member_id,
                    start_position=-len(document.text),
                    display=member_id,
                )

    def _fuzzy_match(self, query: str, text: str) -> bool:
        """
        Fuzzy match: all characters in query must appear in order in text.

        Example:
            query="al" matches "alice"
            query="bb" matches "bob"
        """
        query_idx = 0
        for char in text:
            if query_idx < len(query) and char == query[query_idx]:
                query_idx += 1
        return query_idx == len(query)


class PercentValidator(Validator):
    """Accept numbers between 0 and 100."""

    def validate(self, document: Document):
        text = document.text.strip()
        try:
            value = float(text)
        except ValueError:
            raise ValidationError(message="Enter a number", cursor_position=len(text))
        if not 0 <= value <= PERCENT_TOTAL:
            raise ValidationError(
                message="Percentage must be between 0 and 100",
                cursor_position=len(text),
            )


def select_member_interactive(members: Sequence[str], prompt: str = "Member: ") -> str | None:
    """
    Pick a member id with fuzzy completion.

    Returns:
        Selected member id, or None to cancel
    """
    completer = MemberCompleter(members)
    session: PromptSession[str] = PromptSession(completer=completer)

    print("   Type to search, press Enter to confirm, Ctrl+C to cancel\n")

    try:
        while True:
            result = session.prompt(prompt, complete_while_typing=True).strip()
            if not result:
                return None
            if result in members:
                return result
            print("❌ Not a member of this group. Press Tab to complete.")
    except (KeyboardInterrupt, EOFError):
        return None


def prompt_custom_percentages(members: Sequence[str]) -> dict[str, float] | None:
    """
    Ask for one percentage per member until they sum to 100.

    The last member is offered the remainder as a default.

    Returns:
        Member -> percent map, or None if the user cancelled
    """
    session: PromptSession[str] = PromptSession(validator=PercentValidator())

    try:
        while True:
            percentages: dict[str, float] = {}
            for index, member_id in enumerate(members):
                remaining = PERCENT_TOTAL - sum(percentages.values())
                default = f"{remaining:g}" if index == len(members) - 1 else ""
                answer = session.prompt(f"{member_id} %: ", default=default)
                percentages[member_id] = float(answer)

            if validate_percentages(percentages):
                logger.debug(f"Custom percentages entered: {percentages}")
                return percentages

            total = sum(percentages.values())
            print(f"❌ Percentages sum to {total:g}%, they must sum to 100%. Try again.\n")
    except (KeyboardInterrupt, EOFError):
        print("\n⏭️  Cancelled")
        return None


def confirm(message: str) -> bool:
    """Simple yes/no confirmation."""
    response = input(f"   {message} [Y/n] ").strip().lower()
    return response in ("", "y", "yes")
