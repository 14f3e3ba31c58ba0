"""Final formatting of replies shown to the user."""
import random
import re
from typing import Callable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from models.task import Task
from models.protocol import OUTPUT_PREFIX
from services.context_builder import format_display_datetime
from config import DISPLAY_TIMEZONE, PERSONA_MARKER, REACTION_EMOJIS

FINAL_PUNCTUATION = (".", "!", "?")
EMPTY_REPLY = "All done"


def priority_label(priority: int) -> str:
    """High above 8, Medium from 5 to 8, Low below 5."""
    if priority > 8:
        return "High"
    if priority >= 5:
        return "Medium"
    return "Low"


class ResponseSanitizer:
    """
    Strips markup and enforces the persona on every reply.

    The persona marker and the reaction symbol are only added when missing,
    so running a reply through sanitize() twice changes nothing.
    """

    def __init__(
        self,
        persona_marker: str = PERSONA_MARKER,
        reactions: Sequence[str] = tuple(REACTION_EMOJIS),
        timezone_name: str = DISPLAY_TIMEZONE,
        chooser: Optional[Callable[[Sequence[str]], str]] = None
    ):
        """
        Args:
            persona_marker: Address token required in every reply
            reactions: Palette of reaction symbols
            timezone_name: Zone used to render deadlines
            chooser: Picks one reaction from the palette (random.choice by default)
        """
        if not reactions:
            raise ValueError("Reaction palette cannot be empty")

        self.persona_marker = persona_marker
        self._marker_pattern = re.compile(rf"\b{re.escape(persona_marker)}\b", re.IGNORECASE)
        self.reactions = list(reactions)
        self.tz = ZoneInfo(timezone_name)
        self.chooser = chooser or random.choice

    def sanitize(self, text: str) -> str:
        """
        Clean a reply and make it persona-consistent.

        Args:
            text: Raw reply text

        Returns:
            Text without markdown, containing the persona marker and exactly
            one added reaction symbol when none was present
        """
        clean = (text or "").strip()
        if clean.startswith(OUTPUT_PREFIX):
            clean = clean[len(OUTPUT_PREFIX):].strip()

        clean = self._strip_markdown(clean).strip() or EMPTY_REPLY

        if not self.has_persona_marker(clean):
            clean = self._add_persona_marker(clean)

        if not self.has_reaction(clean):
            clean = f"{clean} {self.chooser(self.reactions)}"

        return clean

    def has_persona_marker(self, text: str) -> bool:
        return bool(self._marker_pattern.search(text))

    def has_reaction(self, text: str) -> bool:
        return any(symbol in text for symbol in self.reactions)

    def format_task_list(self, tasks: List[Task]) -> str:
        """
        Render tasks as a numbered list.

        Each entry shows the title, the deadline in the display timezone, the
        priority label with its number and a completion marker.
        """
        entries = []
        for index, task in enumerate(tasks, start=1):
            deadline = format_display_datetime(task.deadline, self.tz) if task.deadline else "No deadline"
            entries.append(
                f"{index}. {task.title}\n"
                f"   • Deadline: {deadline}\n"
                f"   • Priority: {priority_label(task.priority)} ({task.priority})\n"
                f"   • Completed: {'✅' if task.is_completed else '❌'}"
            )
        return "\n\n".join(entries)

    @staticmethod
    def _strip_markdown(text: str) -> str:
        text = re.sub(r"```[\w-]*", "", text)
        text = text.replace("`", "")
        text = text.replace("**", "").replace("__", "").replace("*", "")
        # Underscores used as emphasis, not those inside identifiers
        text = re.sub(r"(?<!\w)_+|_+(?!\w)", "", text)
        # Heading markers at line start
        text = re.sub(r"(?m)^[ \t]*#{1,6}[ \t]*", "", text)
        return text

    def _add_persona_marker(self, text: str) -> str:
        # Keep trailing reaction symbols after the marker
        core, tail = text, ""
        stripped = True
        while stripped:
            stripped = False
            for symbol in self.reactions:
                if core.rstrip().endswith(symbol):
                    core = core.rstrip()
                    tail = symbol + (" " + tail if tail else "")
                    core = core[:-len(symbol)]
                    stripped = True
                    break

        core = core.rstrip() or EMPTY_REPLY
        if tail:
            tail = " " + tail
        if core.endswith(FINAL_PUNCTUATION):
            return f"{core[:-1]}, {self.persona_marker}{core[-1]}{tail}"
        return f"{core}, {self.persona_marker}{tail}"
