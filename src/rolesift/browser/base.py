"""Protocol definition for browser sessions."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Protocol, runtime_checkable


@runtime_checkable
class BrowserSession(Protocol):
    """Thin abstraction over a browser automation library.

    Listing sources and description extractors receive the page yielded by
    :meth:`open_page`; each keyword and each detail candidate gets its own tab.
    """

    async def launch(self) -> None:
        """Start the browser process."""
        ...

    async def close(self) -> None:
        """Shut down the browser and free resources."""
        ...

    def open_page(self) -> AsyncContextManager[Any]:
        """Open a fresh tab, closed again when the context exits."""
        ...


class DetachedBrowser:
    """Stand-in session for sources that never touch a browser. Pages are ``None``."""

    async def launch(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @asynccontextmanager
    async def open_page(self) -> AsyncIterator[None]:
        yield None
