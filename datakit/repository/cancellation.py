import asyncio
from typing import Awaitable, Optional, TypeVar
from datakit.exceptions.errors import CancellationError

R = TypeVar("R")


async def run_cancellable(work: Awaitable[R], cancel: Optional[asyncio.Event], operation: str) -> R:
    """Await ``work`` unless ``cancel`` fires first.

    A signal that is already set means ``work`` never starts. A signal set while
    ``work`` is pending cancels it and raises :class:`CancellationError` with
    ``interrupted`` set.
    """
    if cancel is None:
        return await work
    if cancel.is_set():
        if asyncio.iscoroutine(work):
            work.close()
        raise CancellationError(f"{operation} cancelled before it started")

    task = asyncio.ensure_future(work)
    signal = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, signal}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        signal.cancel()
        raise

    if task in done:
        signal.cancel()
        return task.result()

    task.cancel()
    # Outcome of the abandoned work is irrelevant once cancelled
    await asyncio.gather(task, return_exceptions=True)
    raise CancellationError(f"{operation} cancelled", interrupted=True)
