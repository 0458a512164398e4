"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional

from camera import OpenCVCamera
from config import AppSettings, JsonConfigStore
from detector import DetectionSummaryDescriber, YoloDetector
from gestures import GestureClassifier, GestureThresholds
from hotkey import GlobalHotkeyPointer
from interfaces import ConfigStore
from llm import DashscopeAssistant, DashscopeSceneDescriber
from location import IpLocationProvider
from mode_controller import ModeController, describe_mode
from models import ApplicationMode, DetectionFrame
from overlay import InteractionSurface
from recognizer import DashscopeRecognitionFactory
from scheduler import ThreadScheduler
from speech_io import LocalSpeechIO, Pyttsx3Synthesizer

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

LOG_FILE = "assistive_visions.log"

ICON_COLORS = {
    ApplicationMode.IDLE.value: "#888888",       # grey
    ApplicationMode.CAMERA.value: "#34C759",     # green
    ApplicationMode.ASSISTANT.value: "#007AFF",  # blue
}


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(), logging.FileHandler(LOG_FILE, encoding="utf-8")],
    )


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


class UIBridge(QObject):
    status_signal = Signal(str)
    description_signal = Signal(str)
    mode_signal = Signal(str, str)  # from_mode, to_mode
    frame_signal = Signal(object, object)  # frame, DetectionFrame


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.config_store: ConfigStore = JsonConfigStore()
        self.settings: AppSettings = self.config_store.load_settings()
        # fills in tunables missing from the file
        self.config_store.save_settings(self.settings)
        self.scheduler = ThreadScheduler()

        self.ui = UIBridge()
        self.ui.status_signal.connect(self._on_status_ui)
        self.ui.description_signal.connect(self._on_description_ui)
        self.ui.mode_signal.connect(self._on_mode_change_ui)
        self.ui.frame_signal.connect(self._on_frame_ui)

        api_key = self.config_store.get_api_key()
        self.recognition = DashscopeRecognitionFactory(
            api_key=api_key,
            model=self.settings.recognition_model,
            speech_level=self.settings.speech_level,
            end_silence_s=self.settings.end_silence_s,
            no_speech_timeout_s=self.settings.no_speech_timeout_s,
        )
        self.speech = LocalSpeechIO(
            synthesizer=Pyttsx3Synthesizer(rate=self.settings.speech_rate),
            session_factory=self.recognition,
            dispatch=self.scheduler.post,
        )
        self.assistant_client = DashscopeAssistant(api_key=api_key, model=self.settings.assistant_model)
        self.scene_describer = DashscopeSceneDescriber(api_key=api_key, model=self.settings.describe_model)
        self.summary_describer = DetectionSummaryDescriber()

        self.controller = ModeController(
            speech=self.speech,
            camera=OpenCVCamera(
                device=self.settings.camera_device,
                warmup_s=self.settings.camera_warmup_s,
            ),
            detector=YoloDetector(
                model_path=self.settings.detector_model,
                confidence=self.settings.detection_confidence,
            ),
            describer=self._pick_describer(api_key),
            assistant=self.assistant_client,
            scheduler=self.scheduler,
            location=IpLocationProvider(),
            settings=self.settings,
            on_mode_change=self._on_mode_change,
            on_status=self.ui.status_signal.emit,
            on_frame=self.ui.frame_signal.emit,
            on_description=self.ui.description_signal.emit,
        )
        self.gestures = GestureClassifier(
            scheduler=self.scheduler,
            on_gesture=self.controller.handle_gesture,
            thresholds=GestureThresholds(
                long_press_s=self.settings.long_press_s,
                double_tap_s=self.settings.double_tap_s,
                swipe_min_dy=self.settings.swipe_min_dy,
                swipe_max_dx=self.settings.swipe_max_dx,
            ),
        )

        post = self.scheduler.post
        self.window = InteractionSurface(
            on_pointer_down=lambda x, y: post(self.gestures.pointer_down, x, y),
            on_pointer_move=lambda x, y: post(self.gestures.pointer_move, x, y),
            on_pointer_up=lambda x, y: post(self.gestures.pointer_up, x, y),
            on_pointer_cancel=lambda: post(self.gestures.pointer_cancel),
        )
        self.hotkey = GlobalHotkeyPointer(hotkey_name=self.config_store.get_hotkey())

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_COLORS[ApplicationMode.IDLE.value]))
        self.tray.setToolTip("Assistive Visions - Ready")
        self._setup_menu()
        self.tray.show()

    def _pick_describer(self, api_key: str) -> Any:
        if self.settings.use_scene_model and api_key:
            return self.scene_describer
        logger.info("Scene model disabled or no API key, using detection summaries")
        return self.summary_describer

    def _setup_menu(self) -> None:
        menu = QMenu()

        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        hotkey_action = QAction("Set Hotkey", menu)
        hotkey_action.triggered.connect(self._set_hotkey)
        menu.addAction(hotkey_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        self.scheduler.post(self._apply_api_key, value)
        QMessageBox.information(None, "Saved", "API Key saved and applied.")

    def _apply_api_key(self, api_key: str) -> None:
        self.recognition.api_key = api_key
        self.assistant_client.api_key = api_key
        self.scene_describer.api_key = api_key
        self.controller.detection.set_describer(self._pick_describer(api_key))

    def _set_hotkey(self) -> None:
        value, ok = QInputDialog.getText(
            None, "Hotkey", "Use pynput key format, e.g. Key.f8"
        )
        if not ok or not value:
            return
        self.config_store.set_hotkey(value)
        QMessageBox.information(None, "Saved", "Hotkey saved. Restart app to apply.")

    # ------------------------------------------------------------------
    # Callbacks (called on the event loop thread → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_mode_change(self, from_mode: ApplicationMode, to_mode: ApplicationMode) -> None:
        self.ui.mode_signal.emit(from_mode.value, to_mode.value)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_status_ui(self, text: str) -> None:
        self.window.set_status(text)

    def _on_description_ui(self, text: str) -> None:
        self.window.set_description(text)

    def _on_frame_ui(self, frame: Any, detection: Optional[DetectionFrame]) -> None:
        self.window.set_frame(frame, detection)

    def _on_mode_change_ui(self, from_mode: str, to_mode: str) -> None:
        self.window.set_mode(to_mode)
        self.tray.setIcon(_create_icon(ICON_COLORS.get(to_mode, ICON_COLORS["IDLE"])))
        self.tray.setToolTip(f"Assistive Visions - {describe_mode(ApplicationMode(to_mode))}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.scheduler.start()
        self.window.show()
        try:
            self.hotkey.start(
                on_down=lambda: self.scheduler.post(self.gestures.pointer_down),
                on_up=lambda: self.scheduler.post(self.gestures.pointer_up),
            )
        except Exception as exc:
            logger.warning("Hotkey disabled: %s", exc)
        self.scheduler.post(self.controller.welcome)
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.scheduler.post(self.gestures.reset)
        self.scheduler.post(self.controller.shutdown)
        self.scheduler.stop()
        self.app.quit()


def main() -> int:
    setup_logging()
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
