"""Render-surface seam and the interaction handles attached to it.

The engine never renders. It attaches and detaches interaction handles on
whatever surface the host provides, and receives pointer events back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from geoengine.geo.transform import Extent
from geoengine.interaction.states import DrawKind


@runtime_checkable
class RenderSurface(Protocol):
    """What the host renderer exposes to the interaction machine."""

    @property
    def is_ready(self) -> bool: ...

    def add_interaction(self, interaction: Interaction) -> None: ...

    def remove_interaction(self, interaction: Interaction) -> None: ...

    drag_zoom_active: bool


@dataclass(eq=False)
class Interaction:
    """A handle the surface installs; identity is the handle object itself."""

    name: str = "interaction"


@dataclass(eq=False)
class DrawCapture(Interaction):
    kind: DrawKind = DrawKind.POINT
    target_layer_id: str = ""
    name: str = "draw"


@dataclass(eq=False)
class ClickProbe(Interaction):
    name: str = "click-probe"


@dataclass(eq=False)
class BoxProbe(Interaction):
    # Box selection only starts while the platform modifier is held
    condition: str = "platform-modifier"
    name: str = "box-probe"


# Pointer event kinds
CLICK = "click"
BOX_START = "box_start"
BOX_MOVE = "box_move"
BOX_END = "box_end"
DRAW_END = "draw_end"


@dataclass
class PointerEvent:
    """Input delivered by the surface.

    Attributes:
        kind: One of click, box_start, box_move, box_end, draw_end.
        pixel: Pointer position for clicks (origin top-left).
        modifier: Whether the platform modifier key is held.
        extent: Box extent (display CRS) for box_end.
        geometry: ``{"type", "coordinates"}`` in display CRS for draw_end.
        viewport: The viewport the pixel refers to.
    """

    kind: str
    pixel: tuple[float, float] | None = None
    modifier: bool = False
    extent: Extent | None = None
    geometry: dict | None = None
    viewport: object | None = None
    properties: dict = field(default_factory=dict)


class RecordingSurface:
    """In-memory surface that records attached handles.

    Used by the service shell when no live renderer is connected and by
    tests.
    """

    def __init__(self, ready: bool = True) -> None:
        self.ready = ready
        self.interactions: list[Interaction] = []
        self.drag_zoom_active = True

    @property
    def is_ready(self) -> bool:
        return self.ready

    def add_interaction(self, interaction: Interaction) -> None:
        self.interactions.append(interaction)

    def remove_interaction(self, interaction: Interaction) -> None:
        self.interactions = [i for i in self.interactions if i is not interaction]
