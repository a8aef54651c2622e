"""Tests for the region selector overlay."""

import pytest

from vp_context.capture.overlay import PageMetrics, RegionSelectorOverlay


def _metrics():
    return PageMetrics(scroll_x=0, scroll_y=300, device_pixel_ratio=2)


@pytest.mark.asyncio
async def test_drag_produces_normalized_selection():
    """Dragging up-left still yields a positive rectangle."""
    overlay = RegionSelectorOverlay(_metrics)

    overlay.pointer_down(100, 80)
    overlay.pointer_move(60, 50)
    assert overlay.box.w == 40
    overlay.pointer_up(40, 20)

    selection = await overlay.result
    assert (selection.rect.x, selection.rect.y) == (40, 20)
    assert (selection.rect.w, selection.rect.h) == (60, 60)
    assert selection.scroll_y == 300
    assert selection.device_pixel_ratio == 2
    assert overlay.removed


@pytest.mark.asyncio
async def test_small_selection_resolves_to_none():
    overlay = RegionSelectorOverlay(_metrics, min_px=8)

    overlay.pointer_down(10, 10)
    overlay.pointer_up(17, 200)

    assert await overlay.result is None
    assert overlay.removed


@pytest.mark.asyncio
async def test_pointer_up_without_down_removes_overlay():
    removed = []
    overlay = RegionSelectorOverlay(_metrics, on_remove=removed.append)

    overlay.pointer_up(50, 50)

    assert await overlay.result is None
    assert removed == [overlay]


@pytest.mark.asyncio
async def test_result_resolves_exactly_once():
    """Events after completion are ignored."""
    removed = []
    overlay = RegionSelectorOverlay(_metrics, on_remove=removed.append)

    overlay.pointer_down(0, 0)
    overlay.pointer_up(50, 50)
    overlay.pointer_down(0, 0)
    overlay.pointer_up(90, 90)
    overlay.cancel()

    selection = await overlay.result
    assert selection.rect.w == 50
    assert len(removed) == 1


@pytest.mark.asyncio
async def test_cancel_resolves_to_none():
    overlay = RegionSelectorOverlay(_metrics)
    overlay.pointer_down(0, 0)
    overlay.cancel()

    assert await overlay.result is None
