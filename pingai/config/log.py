import logging

from rich.console import Console
from rich.logging import RichHandler

_CONFIGURED = False


def configure_logging(level: str = "WARNING") -> None:
    """Route the ``pingai`` loggers through rich on stderr. Later calls only change the level."""
    global _CONFIGURED
    root = logging.getLogger("pingai")
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    if _CONFIGURED:
        return

    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    _CONFIGURED = True
