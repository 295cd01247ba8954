"""Draw and inspect interaction modes."""

from geoengine.interaction.machine import InteractionMachine
from geoengine.interaction.states import DrawKind, Drawing, Idle, InspectMode, Inspecting
from geoengine.interaction.surface import (
    BoxProbe,
    ClickProbe,
    DrawCapture,
    PointerEvent,
    RecordingSurface,
    RenderSurface,
)

__all__ = [
    "BoxProbe",
    "ClickProbe",
    "DrawCapture",
    "DrawKind",
    "Drawing",
    "Idle",
    "InspectMode",
    "Inspecting",
    "InteractionMachine",
    "PointerEvent",
    "RecordingSurface",
    "RenderSurface",
]
