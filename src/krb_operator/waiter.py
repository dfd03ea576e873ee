"""Fixed-interval polling used to wait for resources to converge."""

import asyncio
import logging
from typing import Awaitable, Callable

from . import constants as C

logger = logging.getLogger(__name__)


async def wait_for(
    namespace: str,
    timeout: float,
    check: Callable[[], Awaitable[bool]],
    interval: float = C.POLL_INTERVAL,
) -> bool:
    """Poll ``check`` until it returns True or ``timeout`` seconds elapse.

    The check runs immediately and then every ``interval`` seconds. Errors
    raised by the check propagate to the caller.

    Returns:
        True if the check succeeded, False on timeout
    """
    loop = asyncio.get_running_loop()
    interval = min(interval, timeout)
    deadline = loop.time() + timeout

    while True:
        if await check():
            return True

        remaining = deadline - loop.time()
        if remaining <= 0:
            logger.debug(f"[{namespace}] gave up waiting after {timeout}s")
            return False

        await asyncio.sleep(min(interval, remaining))
