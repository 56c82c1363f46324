import sys
from typing import Protocol, TextIO

import structlog

logger = structlog.get_logger()

LOADING_TEXT = "⟳ Loading Credits..."
ERROR_PREFIX = "✖ Credits Error"


class DisplaySink(Protocol):
    """
    DisplaySink is the passive render target the scheduler
    publishes to.
    """

    def show_loading(self) -> "None": ...

    def show_error(self, message: "str") -> "None": ...

    def update_display(self, text: "str", tooltip: "str") -> "None": ...

    def hide(self) -> "None": ...


class ConsoleDisplaySink:
    """
    ConsoleDisplaySink renders the summary line to a terminal
    stream. The tooltip is only written in verbose mode, and a
    line identical to the previous one is not written again.
    """

    def __init__(self, stream: "TextIO | None" = None, verbose: "bool" = False) -> "None":
        self._stream = stream or sys.stdout
        self._verbose = verbose
        self._last: "str | None" = None
        self.visible = False

    def show_loading(self) -> "None":
        logger.debug("display_loading")
        self.visible = True

    def show_error(self, message: "str") -> "None":
        logger.warning("display_error", message=message)
        self._write(f"{ERROR_PREFIX}: {message}")
        self.visible = True

    def update_display(self, text: "str", tooltip: "str") -> "None":
        logger.info("display_updated", text=text)
        self._write(f"{text}\n\n{tooltip}" if self._verbose else text)
        self.visible = True

    def hide(self) -> "None":
        if self.visible:
            logger.info("display_hidden")
        self.visible = False
        self._last = None

    def _write(self, output: "str") -> "None":
        if output == self._last:
            return
        self._last = output
        self._stream.write(output + "\n")
        self._stream.flush()
