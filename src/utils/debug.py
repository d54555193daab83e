from __future__ import annotations

import sys

_verbose = False


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def is_verbose() -> bool:
    return _verbose


def log(message: str) -> None:
    if _verbose:
        print(message)


def warn(message: str) -> None:
    """Diagnostics for recoverable dataset problems; printed regardless of verbosity."""
    print(f"warning: {message}", file=sys.stderr)
