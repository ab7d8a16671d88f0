"""
tubeshell Logging.

One package logger (``tubeshell``) with an instrument decorator for entry
tracing, and a ``tubeshell.page`` child that carries what renderer programs
print to the page console.
"""
import asyncio
import functools
import inspect
import logging
import sys

LOGGER_NAME = 'tubeshell'

LOG_FORMAT = '%(asctime)s.%(msecs)03d %(levelname)-7s %(name)s: %(message)s'

# Page console message types worth surfacing, and the level they land at
CONSOLE_LEVELS = {
    'error': logging.ERROR,
    'assert': logging.ERROR,
    'warning': logging.WARNING,
}

# Renderer programs prefix what they print; everything else is the page's own noise
CONSOLE_PREFIX = '[tubeshell]'


class InstrumentedLogger(logging.Logger):
    """Logger with instrument decorator for method tracing."""

    def instrument(self, message_template: str = "", level: int = logging.INFO):
        """
        Decorator that logs entry to a function/method.

        Args:
            message_template: Format string over the call's bound arguments,
                positional or keyword, e.g. ``"Loading {self.config_file}..."``
            level: Level of the entry record
        """
        def decorator(func):
            signature = inspect.signature(func)

            def render(args, kwargs) -> str:
                try:
                    bound = signature.bind_partial(*args, **kwargs)
                    return message_template.format(**bound.arguments)
                except (KeyError, AttributeError, IndexError, TypeError):
                    return message_template

            @functools.wraps(func)
            def sync_wrapper(*args, **kwargs):
                if message_template and self.isEnabledFor(level):
                    self.log(level, render(args, kwargs))
                return func(*args, **kwargs)

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                if message_template and self.isEnabledFor(level):
                    self.log(level, render(args, kwargs))
                return await func(*args, **kwargs)

            if asyncio.iscoroutinefunction(func):
                return async_wrapper
            return sync_wrapper

        return decorator


def get_logger(name: str) -> InstrumentedLogger:
    """Create the instrumented package logger; children inherit its handler."""
    logging.setLoggerClass(InstrumentedLogger)

    logger = logging.getLogger(name)
    if not isinstance(logger, InstrumentedLogger):
        logger.__class__ = InstrumentedLogger

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S'))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    return logger


def set_level(level: str | int) -> None:
    """Change the package log level (accepts names like 'DEBUG')."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)


def log_console(context_id: str, kind: str, text: str) -> bool:
    """
    Forward one page console message from a renderer program.

    Returns:
        True if the message was logged
    """
    level = CONSOLE_LEVELS.get(kind)
    if level is None or not text.startswith(CONSOLE_PREFIX):
        return False
    page_logger.log(level, f"{context_id}: {text[len(CONSOLE_PREFIX):].strip()}")
    return True


# Suppress uvicorn logs, the embedded servers report through our logger
for _name in ["uvicorn.access", "uvicorn.error", "uvicorn"]:
    _uvicorn_logger = logging.getLogger(_name)
    _uvicorn_logger.handlers.clear()
    _uvicorn_logger.propagate = False


# Create the main logger
logger = get_logger(LOGGER_NAME)
page_logger = logger.getChild('page')
