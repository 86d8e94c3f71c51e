"""Console rendering of interim and final transcripts."""

import logging
from typing import Optional

from rich.console import Console
from rich.control import Control
from rich.segment import ControlType
from rich.text import Text

logger = logging.getLogger(__name__)

SEPARATOR = "-" * 24


class TranscriptPresenter:
    """Renders transcript events to a rich console.

    Interim results share a single line that is reset and rewritten on every
    update. Final results clear that line and append permanent lines that are
    never touched again.
    """

    INTERIM_LABEL = "Listening: "
    PROCESSING_LABEL = "Processing Time: "
    AVERAGE_LABEL = "Average Processing Time: "
    SUMMARY_LABEL = "Final Average Processing Time: "

    def __init__(self, console: Optional[Console] = None, final_label: str = "FINAL: "):
        """Initialize presenter.

        Args:
            console: Console to write to (defaults to stdout)
            final_label: Label printed in front of every final transcript
        """
        self.console = console or Console(highlight=False)
        self.final_label = final_label
        self._interim_visible = False

    @property
    def has_pending_interim(self) -> bool:
        """Whether an interim line is currently displayed."""
        return self._interim_visible

    def show_interim(self, text: str) -> None:
        """Replace the current interim line with `text`."""
        if not self.console.is_terminal:
            # No cursor control on pipes and files: a bare carriage return resets the line.
            self._write_raw(f"\r{self.INTERIM_LABEL}{text}")
            self._interim_visible = True
            return

        line = Text.assemble((self.INTERIM_LABEL, "cyan"), text)
        line.truncate(max(self.console.width - 1, 1), overflow="ellipsis")
        self._reset_line()
        self.console.print(line, end="", soft_wrap=True)
        self._interim_visible = True

    def show_final(self, text: str, processing_ms: float, average_ms: Optional[float] = None) -> None:
        """Append a final transcript block.

        Args:
            text: Final transcript text
            processing_ms: Processing time of this utterance in milliseconds
            average_ms: Running average, None when no duration has been recorded yet
        """
        self._clear_interim()
        self.console.print(Text.assemble((self.final_label, "green"), text))
        self.console.print(Text.assemble((self.PROCESSING_LABEL, "yellow"), f"{processing_ms:.0f}ms"))
        if average_ms is not None:
            self.console.print(Text.assemble((self.AVERAGE_LABEL, "blue"), f"{average_ms:.2f}ms"))
        self.console.print(Text(SEPARATOR))

    def show_summary(self, average_ms: float) -> None:
        """Print the session-wide average processing time."""
        self._clear_interim()
        self.console.print(Text.assemble((self.SUMMARY_LABEL, "magenta"), f"{average_ms:.2f}ms"))

    def show_status(self, message: str, style: str = "yellow") -> None:
        """Print an operator status line."""
        self._clear_interim()
        self.console.print(Text(message, style=style))

    def show_error(self, label: str, error: object) -> None:
        """Print an operator-facing error line."""
        self._clear_interim()
        self.console.print(Text.assemble((f"{label} ", "red"), str(error)))

    def _clear_interim(self) -> None:
        if self._interim_visible:
            self._reset_line()
            self._interim_visible = False

    def _reset_line(self) -> None:
        if self.console.is_terminal:
            self.console.control(Control.move_to_column(0), Control((ControlType.ERASE_IN_LINE, 2)))
        else:
            self._write_raw("\r")

    def _write_raw(self, text: str) -> None:
        self.console.file.write(text)
        self.console.file.flush()
