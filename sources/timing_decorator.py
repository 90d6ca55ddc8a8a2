# timing_decorator.py
import inspect
import functools
import time
from typing import Callable, Any, Optional, TypeVar, cast

from app_logger import logger

F = TypeVar("F", bound=Callable[..., Any])

def _log_elapsed(tag: str, start: float) -> None:
    # DEBUG → file only, the memory handler stays at INFO
    logger.debug("[%s] took %.4f s", tag, time.perf_counter() - start)

def timed(label: Optional[str] = None) -> Callable[[F], F]:
    """
    Decorator that measures execution time and logs it at DEBUG level.
    Works on plain functions and on coroutine functions; for the latter
    the time covers the whole awaited call, pacing delays included.
    """
    def decorator(func: F) -> F:
        tag = label or func.__qualname__

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                start = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    _log_elapsed(tag, start)
            return cast(F, async_wrapper)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _log_elapsed(tag, start)
        return cast(F, wrapper)
    return decorator
