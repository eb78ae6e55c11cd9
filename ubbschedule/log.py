from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: int = logging.INFO) -> None:
    root = logging.getLogger()

    if getattr(root, "_ubbschedule_logging_configured", False):
        root.setLevel(level)
        return

    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(handler)
    setattr(root, "_ubbschedule_logging_configured", True)
