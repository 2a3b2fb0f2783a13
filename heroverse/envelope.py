import asyncio
from typing import Awaitable, TypeVar

from .errors import GenerationError, ModelTimeoutError, classify_error

T = TypeVar("T")


async def guarded_call(call: Awaitable[T], timeout: float) -> T:
    """
    Race a model call against a deadline.

    Raises ModelTimeoutError when the deadline wins, otherwise re-raises the
    failure as the matching GenerationError subclass. The timed-out call is
    cancelled, so its late result can never reach a caller.
    """
    try:
        return await asyncio.wait_for(call, timeout)
    except asyncio.TimeoutError as e:
        raise ModelTimeoutError(f"Timeout after {timeout:g}s") from e
    except GenerationError:
        raise
    except Exception as e:
        raise classify_error(e) from e
