"""Async utilities for bridging blocking git and filesystem calls to asyncio."""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Every dulwich and draft-file call made by the coordinator goes through
    here; these are the only suspension points of an engine operation.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        gateway = RepoGateway(repo_dir, credentials)
        commit = await run_sync(gateway.resolve_ref, "refs/heads/master")
    """
    return await asyncio.to_thread(func, *args, **kwargs)
