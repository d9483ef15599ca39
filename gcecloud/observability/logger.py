"""Loguru-style logger for gcecloud backed by stdlib logging + rich.

Usage::

    from gcecloud.observability.logger import logger

    log = logger.bind(component="poller")
    log.info("Operation {name} done after {n} checks", name=op, n=3)

Records go to the ``gcecloud`` logger hierarchy, which does not propagate
to the root logger. Applications attach sinks with ``logger.add``.
"""

from __future__ import annotations

import inspect
import logging
import logging.handlers
import os
import sys
from typing import TextIO

from rich.logging import RichHandler

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_root = logging.getLogger("gcecloud")


def _caller() -> inspect.FrameInfo:
    return inspect.stack(0)[3]


def _format_message(msg: str, args: tuple[object, ...], kwargs: dict[str, object]) -> str:
    if kwargs:
        return msg.format(**kwargs)
    if args:
        return msg.format(*args)
    return msg


class BoundLogger:
    __slots__ = ("_extras",)

    def __init__(self, extras: dict[str, object] | None = None) -> None:
        self._extras = extras or {}

    def bind(self, **kwargs: object) -> BoundLogger:
        return BoundLogger({**self._extras, **kwargs})

    def _log(self, level: int, message: str, /, *args: object, **kwargs: object) -> None:
        exc_info = kwargs.pop("exc_info", False)
        frame = _caller()
        module = frame.frame.f_globals.get("__name__", "gcecloud")
        if _is_disabled(module):
            return
        lib_logger = logging.getLogger(module)
        if not lib_logger.isEnabledFor(level):
            return
        record = lib_logger.makeRecord(
            name=lib_logger.name,
            level=level,
            fn=frame.filename,
            lno=frame.lineno,
            msg=_format_message(message, args, kwargs),
            args=(),
            exc_info=sys.exc_info() if exc_info else None,
            func=frame.function,
        )
        record.filename = os.path.basename(frame.filename)
        for k, v in self._extras.items():
            setattr(record, k, v)
        record.extras = self._extras  # type: ignore[attr-defined]
        lib_logger.handle(record)

    def trace(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(TRACE, message, *args, **kwargs)

    def debug(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(logging.DEBUG, message, *args, **kwargs)

    def info(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(logging.INFO, message, *args, **kwargs)

    def warning(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(logging.WARNING, message, *args, **kwargs)

    def error(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(logging.ERROR, message, *args, **kwargs)

    def exception(self, message: str, /, *args: object, **kwargs: object) -> None:
        kwargs["exc_info"] = True
        self._log(logging.ERROR, message, *args, **kwargs)


_handler_counter = 0
_handlers: dict[int, logging.Handler] = {}
_disabled: set[str] = set()


def _is_disabled(module: str) -> bool:
    return any(module == name or module.startswith(f"{name}.") for name in _disabled)


def _make_file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=50 * 1024 * 1024,
        backupCount=10,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(levelname)-8s | "
        "%(name)s:%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    return handler


def _make_console_handler(level: int) -> logging.Handler:
    handler = RichHandler(
        level=level,
        show_time=True,
        show_level=True,
        show_path=True,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    return handler


class _Logger:
    def __init__(self) -> None:
        self._bound = BoundLogger()

    def bind(self, **kwargs: object) -> BoundLogger:
        return self._bound.bind(**kwargs)

    def debug(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._bound.debug(message, *args, **kwargs)

    def info(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._bound.info(message, *args, **kwargs)

    def warning(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._bound.warning(message, *args, **kwargs)

    def error(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._bound.error(message, *args, **kwargs)

    def add(self, sink: str | TextIO, *, level: str = "INFO") -> int:
        """Attach a sink: a file path gets a rotating file, anything else the rich console."""
        global _handler_counter
        numeric_level = getattr(logging, level.upper(), logging.INFO)

        match sink:
            case str() as path:
                handler = _make_file_handler(path, numeric_level)
            case _:
                handler = _make_console_handler(numeric_level)

        _root.addHandler(handler)
        _handler_counter += 1
        _handlers[_handler_counter] = handler
        return _handler_counter

    def remove(self, handler_id: int | None = None) -> None:
        """Detach and close one sink, or all of them."""
        ids = list(_handlers) if handler_id is None else [handler_id]
        for i in ids:
            if h := _handlers.pop(i, None):
                _root.removeHandler(h)
                h.close()

    def disable(self, name: str = "gcecloud") -> None:
        """Silence `name` and every module below it."""
        _disabled.add(name)

    def enable(self, name: str = "gcecloud") -> None:
        _disabled.discard(name)


logger = _Logger()

_root.setLevel(TRACE)
_root.propagate = False
