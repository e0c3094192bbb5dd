from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Union

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


class DebugSinkAdapter(logging.LoggerAdapter):
    """
    Forwards every message to a plain `callable(str)` sink as well as to the
    wrapped logger. Lets callers watch an extraction run without touching
    global logging configuration.
    """

    def __init__(self, logger: LoggerLike, sink: Callable[[str], None]):
        super().__init__(logger, {})
        self.sink = sink

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        text = str(msg) % args if args else str(msg)
        self.sink(text)
        super().log(level, msg, *args, **kwargs)


def resolve_logger(
    logger: Optional[LoggerLike] = None,
    debug: Optional[Callable[[str], None]] = None,
    name: str = "routewise",
) -> LoggerLike:
    base: LoggerLike = logger if logger is not None else logging.getLogger(name)
    if debug is None or (isinstance(base, DebugSinkAdapter) and base.sink == debug):
        return base
    return DebugSinkAdapter(base, debug)


logging.getLogger("routewise").addHandler(logging.NullHandler())
