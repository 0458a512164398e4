"""Pointer/touch gesture classifier.

Turns raw pointer down/move/up events into exactly one gesture per physical
interaction: single tap, double tap, long press (start and release) or
swipe up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from interfaces import Scheduler, TimerHandle
from models import GestureEvent, GestureKind

logger = logging.getLogger(__name__)

GestureCallback = Callable[[GestureEvent], None]


@dataclass
class GestureThresholds:
    long_press_s: float = 0.7
    double_tap_s: float = 0.3
    swipe_min_dy: float = 50.0
    swipe_max_dx: float = 75.0


class GestureClassifier:
    def __init__(
        self,
        scheduler: Scheduler,
        on_gesture: GestureCallback,
        thresholds: Optional[GestureThresholds] = None,
    ) -> None:
        self._scheduler = scheduler
        self._on_gesture = on_gesture
        self.thresholds = thresholds or GestureThresholds()

        self._pressed = False
        self._origin: Optional[tuple[float, float]] = None
        self._hold_timer: Optional[TimerHandle] = None
        self._hold_consumed = False
        self._dragging = False
        self._last_tap_at: Optional[float] = None
        self._tap_timer: Optional[TimerHandle] = None

    @property
    def is_pressed(self) -> bool:
        return self._pressed

    def pointer_down(self, x: Optional[float] = None, y: Optional[float] = None) -> None:
        if self._pressed:
            # touch and synthesized mouse events can both report the same press
            return
        self._pressed = True
        self._hold_consumed = False
        self._dragging = False
        self._origin = (x, y) if x is not None and y is not None else None
        self._cancel_hold_timer()
        self._hold_timer = self._scheduler.call_later(
            self.thresholds.long_press_s, self._on_hold_elapsed
        )

    def pointer_move(self, x: float, y: float) -> None:
        if not self._pressed or self._origin is None or self._hold_consumed:
            return
        dx, dy = self._displacement(x, y)
        if abs(dy) > self.thresholds.swipe_min_dy or abs(dx) > self.thresholds.swipe_max_dx:
            # moving this far can no longer be a hold
            self._dragging = True
            self._cancel_hold_timer()

    def pointer_up(self, x: Optional[float] = None, y: Optional[float] = None) -> None:
        if not self._pressed:
            return
        self._pressed = False
        if self._hold_consumed:
            self._hold_consumed = False
            self._emit(GestureKind.LONG_PRESS_CANCEL)
            return
        self._cancel_hold_timer()

        if self._is_swipe_up(x, y):
            self._clear_tap()
            self._emit(GestureKind.SWIPE_UP)
            return
        if self._dragging:
            logger.debug("Pointer drag ignored")
            return
        self._register_tap()

    def pointer_cancel(self) -> None:
        if not self._pressed:
            return
        self._pressed = False
        self._cancel_hold_timer()
        if self._hold_consumed:
            self._hold_consumed = False
            self._emit(GestureKind.LONG_PRESS_CANCEL)

    def reset(self) -> None:
        self._pressed = False
        self._hold_consumed = False
        self._dragging = False
        self._cancel_hold_timer()
        self._clear_tap()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _on_hold_elapsed(self) -> None:
        self._hold_timer = None
        if not self._pressed:
            return
        self._hold_consumed = True
        self._clear_tap()
        self._emit(GestureKind.LONG_PRESS_START)

    def _register_tap(self) -> None:
        now = self._scheduler.now()
        last = self._last_tap_at
        if last is not None and now - last <= self.thresholds.double_tap_s:
            self._clear_tap()
            self._emit(GestureKind.DOUBLE_TAP)
            return
        self._clear_tap()
        self._last_tap_at = now
        self._tap_timer = self._scheduler.call_later(
            self.thresholds.double_tap_s, self._on_tap_window_elapsed
        )

    def _on_tap_window_elapsed(self) -> None:
        self._tap_timer = None
        if self._last_tap_at is None:
            return
        self._last_tap_at = None
        self._emit(GestureKind.SINGLE_TAP)

    def _is_swipe_up(self, x: Optional[float], y: Optional[float]) -> bool:
        if self._origin is None or x is None or y is None:
            return False
        dx, dy = self._displacement(x, y)
        return dy > self.thresholds.swipe_min_dy and abs(dx) < self.thresholds.swipe_max_dx

    def _displacement(self, x: float, y: float) -> tuple[float, float]:
        assert self._origin is not None
        start_x, start_y = self._origin
        # screen y grows downward, so upward travel is start_y - y
        return x - start_x, start_y - y

    def _cancel_hold_timer(self) -> None:
        if self._hold_timer is not None:
            self._hold_timer.cancel()
            self._hold_timer = None

    def _clear_tap(self) -> None:
        self._last_tap_at = None
        if self._tap_timer is not None:
            self._tap_timer.cancel()
            self._tap_timer = None

    def _emit(self, kind: GestureKind) -> None:
        logger.debug("Gesture: %s", kind.value)
        self._on_gesture(GestureEvent(kind=kind, timestamp=self._scheduler.now()))
