"""Interaction states and the pure transition function.

Exactly one state is active: Idle, Drawing(kind) or Inspecting(mode).
Every command is admissible from every state; there is no invalid
transition, only toggles.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class DrawKind(str, Enum):
    POINT = "Point"
    LINE_STRING = "LineString"
    POLYGON = "Polygon"


class InspectMode(str, Enum):
    CLICK = "click"
    BOX = "box"


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Drawing:
    kind: DrawKind


@dataclass(frozen=True)
class Inspecting:
    mode: InspectMode = InspectMode.CLICK


InteractionState = Union[Idle, Drawing, Inspecting]


# Commands
@dataclass(frozen=True)
class StartDraw:
    kind: DrawKind


@dataclass(frozen=True)
class StopDraw:
    pass


@dataclass(frozen=True)
class ToggleInspect:
    pass


@dataclass(frozen=True)
class SetInspectMode:
    mode: InspectMode


Command = Union[StartDraw, StopDraw, ToggleInspect, SetInspectMode]


def next_state(state: InteractionState, command: Command) -> InteractionState:
    """Return the state reached by applying ``command`` in ``state``."""
    if isinstance(command, StartDraw):
        if isinstance(state, Drawing) and state.kind == command.kind:
            return Idle()
        return Drawing(command.kind)

    if isinstance(command, StopDraw):
        if isinstance(state, Drawing):
            return Idle()
        return state

    if isinstance(command, ToggleInspect):
        if isinstance(state, Inspecting):
            return Idle()
        # Entering from Drawing stops the drawing
        return Inspecting(InspectMode.CLICK)

    if isinstance(command, SetInspectMode):
        if isinstance(state, Inspecting):
            return Inspecting(command.mode)
        return state

    raise TypeError(f"Unknown interaction command: {command!r}")


def describe(state: InteractionState) -> dict:
    if isinstance(state, Drawing):
        return {"state": "drawing", "kind": state.kind.value}
    if isinstance(state, Inspecting):
        return {"state": "inspecting", "mode": state.mode.value}
    return {"state": "idle"}
