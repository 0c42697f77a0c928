import inspect
import logging
from pprint import pformat
from typing import Any

from pydantic import BaseModel

from reposchema.metadata import Metadata


class PprintLogger:
    """A logger wrapper that pretty prints structured log messages.

    Engine components log dictionaries (`{"message": ..., "uri": ...}`) so
    that a single record carries all the context of a decision. Metadata is
    rendered as N-Triples and pydantic models as JSON.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def _format_message(self, msg: Any, pprint: bool = True) -> str:
        if not pprint:
            return str(msg)
        if isinstance(msg, Metadata):
            return msg.to_ntriples()
        if isinstance(msg, BaseModel):
            return msg.model_dump_json(indent=2)
        if isinstance(msg, dict):
            msg = {k: (v.to_ntriples() if isinstance(v, Metadata) else v) for k, v in msg.items()}
        return pformat(msg, width=120, depth=None)

    def _log(self, level: int, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(level, self._format_message(msg, pprint=pprint), *args, stacklevel=3, **kwargs)

    def debug(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.DEBUG, msg, *args, pprint=pprint, **kwargs)

    def info(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.INFO, msg, *args, pprint=pprint, **kwargs)

    def warning(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.WARNING, msg, *args, pprint=pprint, **kwargs)

    def error(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.ERROR, msg, *args, pprint=pprint, **kwargs)

    def critical(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.CRITICAL, msg, *args, pprint=pprint, **kwargs)

    def exception(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, *args, pprint=pprint, **kwargs)

    def __getattr__(self, name: str) -> Any:
        """Delegate any other attributes to the underlying logger."""
        return getattr(self._logger, name)


def setup_logging(name: str | None = None, level: int | None = None) -> PprintLogger:
    """Return a PprintLogger for `name` (default: the calling module).

    A stream handler is attached only to the package root logger
    (`reposync`) and only once, so applications can reconfigure logging
    as usual.
    """
    if name is None:
        frame = inspect.currentframe().f_back  # type: ignore[union-attr]
        name = frame.f_globals.get("__name__", "reposync")  # type: ignore[union-attr]
    root = logging.getLogger("reposync")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s"))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    return PprintLogger(logger)
