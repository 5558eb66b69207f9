"""Shared callback-firing utility used by the pipeline and the route boundary."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any


def fire_callbacks(
    callbacks: Sequence[Any],
    method: str,
    *args: Any,
    logger: logging.Logger | None = None,
    log_level: int = logging.WARNING,
    **kwargs: Any,
) -> None:
    """Call *method* on every callback that defines it, swallowing exceptions.

    A failing observer must never change the outcome of a chat request, so
    errors are only logged (when *logger* is given) and the next callback
    still runs.

    Parameters:
        callbacks: Objects to notify, in registration order.
        method: Name of the hook, e.g. ``"on_stage_start"``.
        *args: Positional arguments forwarded to the hook.
        logger: Optional logger for recording failures.
        log_level: Level for failure records (default ``WARNING``).
        **kwargs: Keyword arguments forwarded to the hook.
    """
    for cb in callbacks:
        fn = getattr(cb, method, None)
        if fn is None or not callable(fn):
            continue
        try:
            fn(*args, **kwargs)
        except Exception:
            if logger:
                logger.log(log_level, "Callback %r.%s failed", cb, method, exc_info=True)
