from collections.abc import Callable, Sequence
from contextlib import asynccontextmanager

from fastapi import FastAPI


def build_lifespan(
    startup: Sequence[Callable[[], None]] = (),
    shutdown: Sequence[Callable[[], None]] = (),
):
    """
    Build a FastAPI lifespan from plain startup/shutdown hooks, without the
    deprecated on_event API.

    Usage:
        app = FastAPI(lifespan=build_lifespan(startup=[init_db]))
    """

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        for hook in startup:
            hook()
        try:
            yield
        finally:
            for hook in shutdown:
                hook()

    return _lifespan
