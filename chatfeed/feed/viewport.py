"""
Viewport geometry and content readiness.

The feed never renders anything; it talks to whatever shows the messages
through the small `Viewport` protocol. Images and other late content are
counted by `ContentTracker` so layout-dependent scrolling can wait for them.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Protocol


class Viewport(Protocol):
    scroll_height: float
    scroll_top: float
    client_height: float

    def scroll_to_bottom(self, smooth: bool) -> None: ...


def distance_from_bottom(viewport: Viewport) -> float:
    return viewport.scroll_height - viewport.scroll_top - viewport.client_height


def is_near_bottom(viewport: Optional[Viewport], threshold: float) -> bool:
    """No viewport attached counts as pinned to the bottom."""
    if viewport is None:
        return True
    return distance_from_bottom(viewport) < threshold


def is_near_top(viewport: Optional[Viewport], threshold: float) -> bool:
    if viewport is None:
        return False
    return viewport.scroll_top < threshold


@dataclass(frozen=True)
class ScrollAnchor:
    """Scroll geometry captured before content is prepended."""

    scroll_height: float
    scroll_top: float

    @classmethod
    def capture(cls, viewport: Viewport) -> "ScrollAnchor":
        return cls(scroll_height=viewport.scroll_height, scroll_top=viewport.scroll_top)

    def restored_offset(self, new_scroll_height: float) -> float:
        return new_scroll_height - self.scroll_height + self.scroll_top

    def restore(self, viewport: Viewport) -> None:
        """Shift the offset by the height the prepended content added."""
        viewport.scroll_top = self.restored_offset(viewport.scroll_height)


class ContentTracker:
    """
    Counts pending asynchronous sub-resources (image decodes). `ready()`
    returns once the count is back at zero.
    """

    def __init__(self):
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def pending(self) -> int:
        return self._pending

    def add(self, count: int = 1) -> None:
        self._pending += count
        if self._pending > 0:
            self._idle.clear()

    def resolve(self, count: int = 1) -> None:
        """Mark items finished (loaded or failed, both end their layout effect)."""
        self._pending = max(0, self._pending - count)
        if self._pending == 0:
            self._idle.set()

    def reset(self) -> None:
        self._pending = 0
        self._idle.set()

    async def ready(self) -> None:
        await self._idle.wait()
