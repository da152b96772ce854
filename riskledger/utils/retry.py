from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from riskledger.utils.config import get_settings
from riskledger.utils.exceptions import ServiceError
from riskledger.utils.logger import get_logger
from riskledger.utils.result import OperationResult

logger = get_logger(__name__)

T = TypeVar("T")


async def retry_async(
    operation_name: str,
    operation: Callable[[], Awaitable[T]],
    max_retries: Optional[int] = None,
    initial_delay: Optional[float] = None,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> T:
    """Run ``operation`` with exponential backoff, re-raising the last error."""
    settings = get_settings()
    attempts = max(1, max_retries if max_retries is not None else settings.max_retries)
    delay = initial_delay if initial_delay is not None else settings.retry_delay

    last_error: Optional[BaseException] = None
    for attempt in range(attempts):
        try:
            return await operation()
        except retry_on as e:
            last_error = e
            if attempt < attempts - 1:
                wait_time = delay * (2 ** attempt)
                logger.warning(
                    "operation_retry",
                    operation=operation_name,
                    attempt=attempt + 1,
                    wait=wait_time,
                    error=str(e),
                )
                await asyncio.sleep(wait_time)

    logger.error("operation_failed_after_retries", operation=operation_name, attempts=attempts)
    raise last_error  # type: ignore[misc]


async def initialize_with_timeout(
    name: str,
    initializer: Callable[[], Awaitable[Any]],
    timeout: Optional[float] = None,
) -> OperationResult[Any]:
    limit = timeout if timeout is not None else get_settings().storage_init_timeout
    logger.info("initializing", component=name)
    try:
        value = await asyncio.wait_for(initializer(), timeout=limit)
    except asyncio.TimeoutError:
        logger.error("initialization_timeout", component=name, timeout=limit)
        return OperationResult.failure(
            ServiceError(
                f"{name} initialization timeout after {limit}s",
                operation="initialize",
                code="INITIALIZATION_TIMEOUT",
            )
        )
    except Exception as e:
        logger.error("initialization_failed", component=name, error=str(e))
        return OperationResult.failure(e)

    logger.info("initialized", component=name)
    return OperationResult.success(value)
