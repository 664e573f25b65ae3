"""Bounded-concurrency fan-out used while queueing files for a job."""

import asyncio
from typing import Awaitable, Callable, List, Sequence, TypeVar, Union

T = TypeVar("T")
R = TypeVar("R")


async def batch_process(
    inputs: Sequence[T],
    func: Callable[[T], Awaitable[R]],
    max_concurrent: int = 5,
    return_exceptions: bool = False,
) -> List[Union[R, BaseException]]:
    """
    Apply an async function to every input with concurrency control.

    Args:
        inputs: Items to process.
        func: Async function called once per input.
        max_concurrent: Max number of simultaneous calls.
        return_exceptions: If True, return exceptions instead of raising.

    Returns:
        List of results (or exceptions) in the same order as inputs.
    """
    if max_concurrent < 1:
        raise ValueError("max_concurrent must be at least 1")
    semaphore = asyncio.Semaphore(max_concurrent)

    async def bounded(item: T) -> R:
        async with semaphore:
            return await func(item)

    results = await asyncio.gather(
        *(bounded(item) for item in inputs),
        return_exceptions=return_exceptions,
    )
    return list(results)
