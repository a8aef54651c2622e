"""Cross-endpoint bus messages.

A closed tagged union discriminated on ``type``. Every message is
serialized to JSON on send and parsed on receipt, so endpoints never
share objects.
"""

from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from .capture import Rect, SelectionRect


class OpenPanelWithContext(BaseModel):
    """Open the panel and seed it with the selected page text."""

    type: Literal["open_panel_with_context"] = "open_panel_with_context"
    context: str = Field("", description="Selected text")


class OpenPanel(BaseModel):
    """Open the panel without payload."""

    type: Literal["open_panel"] = "open_panel"


class PanelOpened(BaseModel):
    """Panel announces it is open."""

    type: Literal["panel_opened"] = "panel_opened"


class PanelClosed(BaseModel):
    """Panel announces it is closing."""

    type: Literal["panel_closed"] = "panel_closed"


class ShowTriggerAffordance(BaseModel):
    """Re-arm the page trigger after the panel closed."""

    type: Literal["show_trigger_affordance"] = "show_trigger_affordance"


class RectSelected(BaseModel):
    """A region was chosen on the page overlay."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["rect_selected"] = "rect_selected"
    rect: Rect
    scroll_x: float = Field(0, alias="scrollX")
    scroll_y: float = Field(0, alias="scrollY")
    device_pixel_ratio: float = Field(1, alias="devicePixelRatio")

    @classmethod
    def from_selection(cls, selection: SelectionRect) -> "RectSelected":
        return cls(
            rect=selection.rect,
            scroll_x=selection.scroll_x,
            scroll_y=selection.scroll_y,
            device_pixel_ratio=selection.device_pixel_ratio,
        )

    def to_selection(self) -> SelectionRect:
        return SelectionRect(
            rect=self.rect,
            scroll_x=self.scroll_x,
            scroll_y=self.scroll_y,
            device_pixel_ratio=self.device_pixel_ratio,
        )


BusMessage = Annotated[
    Union[
        OpenPanelWithContext,
        OpenPanel,
        PanelOpened,
        PanelClosed,
        ShowTriggerAffordance,
        RectSelected,
    ],
    Field(discriminator="type"),
]


class Envelope(BaseModel):
    """Routing wrapper for a bus message."""

    source: str = Field(..., description="Sender address")
    target: str = Field(..., description="Recipient address")
    tab_id: Optional[int] = Field(None, description="Browser tab the message concerns")
    message: BusMessage


