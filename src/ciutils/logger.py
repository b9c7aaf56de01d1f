"""Logger for ciutils.

A rich handler is attached to the ``ciutils`` logger the first time anything is
logged through this module, or when the CLI applies the configured level.
Importing ciutils alone leaves the host application's logging untouched.
"""
import logging
import typing as t

from rich.logging import RichHandler

__all__ = [
    "configure",
    "level_from_config",
    "set_level",
    "LOG_LEVEL",
    "LOGGER",
]

LOGGER = logging.LoggerAdapter(logging.getLogger("ciutils"), {})
"""ciutils logger instance."""

LOG_LEVEL: t.Union[int, str] = logging.INFO
"""The active log level for ciutils."""

_handler: t.Optional[RichHandler] = None


def _normalize(level: t.Union[int, str]) -> t.Union[int, str]:
    return level.upper() if isinstance(level, str) else level


def _apply(level: t.Union[int, str]) -> None:
    global LOG_LEVEL

    level = _normalize(level)
    LOGGER.setLevel(level)
    LOG_LEVEL = level


def configure(level: t.Union[int, str] = logging.INFO) -> None:
    """Attach the rich handler to the package logger. Does nothing once attached.

    Args:
        level (int | str, optional): Logging level, a number or a case insensitive
            name. Defaults to logging.INFO.
    """
    global _handler

    if _handler is not None:
        return
    _apply(level)
    _handler = RichHandler(markup=True, rich_tracebacks=True, omit_repeated_times=False)
    LOGGER.logger.addHandler(_handler)


def set_level(level: t.Union[int, str]) -> None:
    """Set the package log level, attaching the handler if needed.

    Raises:
        ValueError: If the log level is not valid.
    """
    if _handler is None:
        configure(level)
    else:
        _apply(level)


def level_from_config(
    config: t.Optional[t.Mapping[str, t.Any]],
    default: t.Union[int, str] = logging.INFO,
) -> t.Union[int, str]:
    """Read the level from the ``logger`` section of a loaded configuration.

    Example:
        A ``ciutils.yaml`` containing::

            logger:
              level: debug

        yields "DEBUG".
    """
    section = config.get("logger") if config else None
    level = section.get("level") if isinstance(section, t.Mapping) else None
    return _normalize(level) if level else default


def __getattr__(name: str) -> t.Callable[..., None]:
    """Forward logging methods such as ``logger.info`` to the package logger."""
    if name.startswith("__"):
        raise AttributeError(name)
    configure()
    return getattr(LOGGER, name)
