"""Visibility bookkeeping for rendering.

Everything imported or produced for a tile is registered in the scene.
An ortho export renders only what is visible, so before exporting the
scene is isolated to the items belonging in the image (the textured
meshes, or the styled clouds); the previous visibility is restored
afterwards.
"""

from contextlib import contextmanager
from typing import Iterator, List, Sequence

from ..engine.base import Renderable


class Scene:
    """Items registered for the current tile."""

    def __init__(self) -> None:
        self.items: List[Renderable] = []

    def add(self, items: Sequence[Renderable]) -> None:
        self.items.extend(items)

    def visible_items(self) -> List[Renderable]:
        return [item for item in self.items if item.visible]

    def hide_all(self) -> None:
        for item in self.items:
            item.visible = False

    @contextmanager
    def isolate(self, items: Sequence[Renderable]) -> Iterator[List[Renderable]]:
        """Show only ``items`` for the duration of the block.

        Yields the list of items to render.  The previous visibility is
        restored on exit.
        """
        self.add([item for item in items if not any(item is known for known in self.items)])
        previous = [(item, item.visible) for item in self.items]
        self.hide_all()
        for item in items:
            item.visible = True
        try:
            yield self.visible_items()
        finally:
            for item, visible in previous:
                item.visible = visible

    def clear(self) -> None:
        self.items = []
