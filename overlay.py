"""Full-window interaction surface: gestures in, status and camera preview out."""

from __future__ import annotations

from typing import Any, Callable, Optional

from camera import draw_detections
from models import ApplicationMode, DetectionFrame

try:
    from PySide6.QtCore import Qt
    from PySide6.QtGui import QImage, QPixmap
    from PySide6.QtWidgets import QLabel, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QImage = None  # type: ignore
    QPixmap = None  # type: ignore
    QLabel = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

PointerCallback = Callable[[float, float], None]

MODE_COLORS = {
    ApplicationMode.IDLE.value: "#1C1C1E",
    ApplicationMode.CAMERA.value: "#0A2A12",
    ApplicationMode.ASSISTANT.value: "#0A1A33",
}

_LABEL_STYLE = (
    "color: white; font-size: 22px; padding: 16px;"
    "background: rgba(0,0,0,190); border-radius: 12px;"
)


class InteractionSurface(QWidget):
    """The whole window is one touch target.

    Child labels ignore mouse input so every press, move and release lands
    here and is forwarded as pointer coordinates.
    """

    def __init__(
        self,
        on_pointer_down: PointerCallback,
        on_pointer_move: PointerCallback,
        on_pointer_up: PointerCallback,
        on_pointer_cancel: Optional[Callable[[], None]] = None,
    ) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self._on_pointer_down = on_pointer_down
        self._on_pointer_move = on_pointer_move
        self._on_pointer_up = on_pointer_up
        self._on_pointer_cancel = on_pointer_cancel

        self.setWindowTitle("Assistive Visions")
        self.setMinimumSize(480, 640)
        self.setAccessibleName("Assistive Visions interaction area")
        self.setAccessibleDescription(
            "Double tap to identify objects. Tap and hold to talk to the assistant."
        )

        self._preview = QLabel("")
        self._preview.setAlignment(Qt.AlignCenter)
        self._preview.setAttribute(Qt.WA_TransparentForMouseEvents, True)

        self._status = QLabel("")
        self._status.setWordWrap(True)
        self._status.setAlignment(Qt.AlignCenter)
        self._status.setStyleSheet(_LABEL_STYLE)
        self._status.setAttribute(Qt.WA_TransparentForMouseEvents, True)

        self._description = QLabel("")
        self._description.setWordWrap(True)
        self._description.setStyleSheet("color: #D0D0D0; font-size: 16px; padding: 8px;")
        self._description.setAttribute(Qt.WA_TransparentForMouseEvents, True)

        layout = QVBoxLayout()
        layout.setContentsMargins(16, 16, 16, 16)
        layout.addWidget(self._preview, 1)
        layout.addWidget(self._description)
        layout.addWidget(self._status)
        self.setLayout(layout)
        self.set_mode(ApplicationMode.IDLE.value)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def set_status(self, text: str) -> None:
        self._status.setText(text)
        self._status.setAccessibleName(text)

    def set_description(self, text: str) -> None:
        self._description.setText(text)

    def set_mode(self, mode: str) -> None:
        self.setStyleSheet(f"background: {MODE_COLORS.get(mode, MODE_COLORS['IDLE'])};")
        if mode != ApplicationMode.CAMERA.value:
            self._preview.clear()
            self._description.clear()

    def set_frame(self, frame: Any, detection: Optional[DetectionFrame]) -> None:
        if frame is None:
            self._preview.clear()
            return
        if detection is not None:
            frame = draw_detections(frame, detection.objects)
        height, width = frame.shape[:2]
        # frames are BGR
        image = QImage(frame.data, width, height, frame.strides[0], QImage.Format_BGR888).copy()
        pixmap = QPixmap.fromImage(image).scaled(
            self._preview.size(), Qt.KeepAspectRatio, Qt.SmoothTransformation
        )
        self._preview.setPixmap(pixmap)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def mousePressEvent(self, event: Any) -> None:  # noqa: N802
        if event.button() != Qt.LeftButton:
            return
        pos = event.position()
        self._on_pointer_down(pos.x(), pos.y())

    def mouseMoveEvent(self, event: Any) -> None:  # noqa: N802
        pos = event.position()
        self._on_pointer_move(pos.x(), pos.y())

    def mouseReleaseEvent(self, event: Any) -> None:  # noqa: N802
        if event.button() != Qt.LeftButton:
            return
        pos = event.position()
        self._on_pointer_up(pos.x(), pos.y())

    def leaveEvent(self, event: Any) -> None:  # noqa: N802
        if self._on_pointer_cancel is not None:
            self._on_pointer_cancel()
        super().leaveEvent(event)
