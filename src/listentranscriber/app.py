import signal
import sys

from PySide6.QtCore import QObject
from PySide6.QtWidgets import QApplication

from listentranscriber import __app_name__, __version__
from listentranscriber.core.naming import ensure_output_dirs
from listentranscriber.core.session import SessionOrchestrator
from listentranscriber.core.settings import Settings, get_settings
from listentranscriber.ui.main_window import MainWindow
from listentranscriber.utils.logger import get_logger, shutdown_logging

logger = get_logger(__name__)


class ListenTranscriberApp(QObject):

    def __init__(self, settings: Settings):
        super().__init__()
        self._settings = settings

        try:
            ensure_output_dirs(settings.output_path)
        except OSError as e:
            logger.error(f"Could not create output folder {settings.output_path}: {e}")

        self._orchestrator = SessionOrchestrator(
            output_folder=settings.output_path,
            capture_binary=settings.capture_binary,
            transcribe_binary=settings.transcribe_binary,
            capture_format=settings.capture_format,
            stop_timeout=settings.stop_timeout_seconds,
            include_microphone=settings.include_microphone,
            parent=self,
        )
        self._window = MainWindow(self._orchestrator, settings)

    @property
    def orchestrator(self) -> SessionOrchestrator:
        return self._orchestrator

    def run(self) -> None:
        logger.info(f"{__app_name__} v{__version__} starting")
        self._window.show()
        self._orchestrator.detect_devices()

    def shutdown(self) -> None:
        logger.info("Shutting down")
        self._orchestrator.shutdown()
        self._settings.save()
        shutdown_logging()


def main():
    app = QApplication(sys.argv)
    app.setApplicationName(__app_name__)
    app.setApplicationVersion(__version__)
    signal.signal(signal.SIGINT, lambda *args: QApplication.quit())

    listen_app = ListenTranscriberApp(get_settings())
    app.aboutToQuit.connect(listen_app.shutdown)
    listen_app.run()

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
