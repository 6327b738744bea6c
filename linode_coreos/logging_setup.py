"""CLI logging setup: plain %(message)s format, errors in red on a terminal."""

import logging
import sys

from linode_coreos.redact import SecretRedactingFilter

_RED = "\033[31m"
_YELLOW = "\033[33m"
_RESET = "\033[0m"


class _ColorFormatter(logging.Formatter):
    """Colors WARNING lines yellow and ERROR and above red."""

    def format(self, record):
        message = super().format(record)
        if record.levelno >= logging.ERROR:
            return f"{_RED}{message}{_RESET}"
        if record.levelno >= logging.WARNING:
            return f"{_YELLOW}{message}{_RESET}"
        return message


def setup_cli_logging(verbose=False, stream=None):
    """Configure the root logger for CLI output.

    Output looks like print(); color is used only when the stream is a TTY.
    """
    stream = stream or sys.stdout
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()
    handler = logging.StreamHandler(stream)
    use_color = hasattr(stream, "isatty") and stream.isatty()
    formatter_cls = _ColorFormatter if use_color else logging.Formatter
    handler.setFormatter(formatter_cls("%(message)s"))
    # Filter on the handler so records propagated from module loggers are redacted too
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
