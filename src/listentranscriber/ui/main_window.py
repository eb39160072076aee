from typing import List

from PySide6.QtCore import Qt
from PySide6.QtGui import QIntValidator
from PySide6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QFileDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QPlainTextEdit,
    QProgressBar,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from .. import __app_name__
from ..core.devices import AudioDevice
from ..core.models import AVAILABLE_MODELS, Language, ModelSize, ModelSpec
from ..core.session import SessionOrchestrator, SessionPhase
from ..core.settings import Settings
from ..utils.platform import (
    MICROPHONE_PANE,
    SCREEN_CAPTURE_PANE,
    open_folder,
    open_privacy_settings,
)

AUDIO_FILE_FILTER = "Audio (*.wav *.mp3 *.m4a *.flac *.ogg);;All files (*)"


class MainWindow(QMainWindow):
    """Single window: devices, recording, transcription and output folder."""

    def __init__(self, orchestrator: SessionOrchestrator, settings: Settings, parent=None):
        super().__init__(parent)
        self._orchestrator = orchestrator
        self._settings = settings

        self.setWindowTitle(__app_name__)
        self.setMinimumWidth(520)
        self._setup_ui()
        self._load_settings()

        orchestrator.status_changed.connect(self._status_label.setText)
        orchestrator.download_status_changed.connect(self._download_label.setText)
        orchestrator.download_progress.connect(self._on_download_progress)
        orchestrator.devices_changed.connect(self._on_devices_changed)
        orchestrator.state_changed.connect(self._refresh_controls)
        orchestrator.output_folder_changed.connect(self._on_output_folder_changed)

        self._refresh_controls()

    def _setup_ui(self) -> None:
        central = QWidget()
        layout = QVBoxLayout(central)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.setSpacing(12)

        layout.addWidget(self._create_device_section())
        layout.addWidget(self._create_recording_section())
        layout.addWidget(self._create_transcription_section())
        layout.addWidget(self._create_output_section())

        self._status_label = QLabel(self._orchestrator.state.status)
        self._status_label.setWordWrap(True)
        self._status_label.setTextInteractionFlags(Qt.TextSelectableByMouse)
        layout.addWidget(self._status_label)

        self.setCentralWidget(central)

    def _create_device_section(self) -> QWidget:
        group = QGroupBox("Audio Device")
        form = QFormLayout(group)

        index_layout = QHBoxLayout()
        self._index_edit = QLineEdit()
        self._index_edit.setPlaceholderText("Device index (e.g. 2)")
        self._index_edit.setValidator(QIntValidator(0, 999, self))
        self._index_edit.editingFinished.connect(self._on_index_edited)
        index_layout.addWidget(self._index_edit, 1)

        detect_btn = QPushButton("Detect BlackHole 2ch")
        detect_btn.clicked.connect(lambda: self._orchestrator.detect_devices())
        index_layout.addWidget(detect_btn)

        refresh_btn = QPushButton("Refresh list")
        refresh_btn.clicked.connect(lambda: self._orchestrator.refresh_devices())
        index_layout.addWidget(refresh_btn)
        self._device_buttons = [detect_btn, refresh_btn]
        form.addRow("Index:", index_layout)

        self._mic_cb = QCheckBox("Include microphone")
        self._mic_cb.toggled.connect(self._on_mic_toggled)
        form.addRow("", self._mic_cb)

        self._device_combo = QComboBox()
        self._device_combo.addItem("No devices detected", None)
        self._device_combo.activated.connect(self._on_device_activated)
        form.addRow("Device:", self._device_combo)

        permissions_layout = QHBoxLayout()
        mic_perm_btn = QPushButton("Microphone permission")
        mic_perm_btn.clicked.connect(lambda: open_privacy_settings(MICROPHONE_PANE))
        permissions_layout.addWidget(mic_perm_btn)
        screen_perm_btn = QPushButton("Screen recording permission")
        screen_perm_btn.clicked.connect(lambda: open_privacy_settings(SCREEN_CAPTURE_PANE))
        permissions_layout.addWidget(screen_perm_btn)
        form.addRow("", permissions_layout)

        return group

    def _create_recording_section(self) -> QWidget:
        group = QGroupBox("Recording")
        form = QFormLayout(group)

        self._name_edit = QLineEdit()
        self._name_edit.setPlaceholderText("Name (e.g. client-meeting)")
        self._name_edit.editingFinished.connect(self._save_recording_options)
        form.addRow("Name:", self._name_edit)

        self._timestamp_cb = QCheckBox("Append date")
        self._timestamp_cb.toggled.connect(self._save_recording_options)
        form.addRow("", self._timestamp_cb)

        buttons = QHBoxLayout()
        self._start_btn = QPushButton("Start recording")
        self._start_btn.clicked.connect(self._on_start_clicked)
        buttons.addWidget(self._start_btn)
        self._stop_btn = QPushButton("Stop")
        self._stop_btn.clicked.connect(lambda: self._orchestrator.stop_recording())
        buttons.addWidget(self._stop_btn)
        form.addRow("", buttons)

        return group

    def _create_transcription_section(self) -> QWidget:
        group = QGroupBox("Transcription")
        layout = QVBoxLayout(group)
        form = QFormLayout()

        self._model_combo = QComboBox()
        for spec in AVAILABLE_MODELS:
            self._model_combo.addItem(spec.size.display_name, spec.size.value)
        self._model_combo.currentIndexChanged.connect(self._save_transcription_options)
        form.addRow("Model:", self._model_combo)

        self._language_combo = QComboBox()
        for language in Language:
            self._language_combo.addItem(language.display_name, language.value)
        self._language_combo.currentIndexChanged.connect(self._save_transcription_options)
        form.addRow("Language:", self._language_combo)

        self._gpu_cb = QCheckBox("Use GPU")
        self._gpu_cb.toggled.connect(self._save_transcription_options)
        form.addRow("", self._gpu_cb)
        layout.addLayout(form)

        buttons = QHBoxLayout()
        self._transcribe_btn = QPushButton("Transcribe last audio")
        self._transcribe_btn.clicked.connect(self._on_transcribe_clicked)
        buttons.addWidget(self._transcribe_btn)
        self._choose_btn = QPushButton("Choose audio...")
        self._choose_btn.clicked.connect(self._on_choose_clicked)
        buttons.addWidget(self._choose_btn)
        self._download_btn = QPushButton("Download model")
        self._download_btn.clicked.connect(
            lambda: self._orchestrator.ensure_model(self._current_model())
        )
        buttons.addWidget(self._download_btn)
        self._cancel_download_btn = QPushButton("Cancel download")
        self._cancel_download_btn.clicked.connect(self._orchestrator.cancel_download)
        buttons.addWidget(self._cancel_download_btn)
        layout.addLayout(buttons)

        self._download_progress = QProgressBar()
        self._download_progress.setRange(0, 100)
        self._download_progress.setVisible(False)
        layout.addWidget(self._download_progress)

        self._download_label = QLabel("")
        self._download_label.setWordWrap(True)
        layout.addWidget(self._download_label)

        self._audio_label = QLabel("")
        self._audio_label.setWordWrap(True)
        layout.addWidget(self._audio_label)

        self._transcript_label = QLabel("")
        self._transcript_label.setWordWrap(True)
        layout.addWidget(self._transcript_label)

        self._log_view = QPlainTextEdit()
        self._log_view.setReadOnly(True)
        self._log_view.setPlaceholderText("Transcriber output")
        self._log_view.setMaximumHeight(160)
        layout.addWidget(self._log_view)

        return group

    def _create_output_section(self) -> QWidget:
        group = QGroupBox("Output Folder")
        layout = QHBoxLayout(group)

        self._folder_label = QLabel(str(self._orchestrator.state.output_folder))
        self._folder_label.setWordWrap(True)
        layout.addWidget(self._folder_label, 1)

        change_btn = QPushButton("Change...")
        change_btn.clicked.connect(self._on_change_folder_clicked)
        layout.addWidget(change_btn)

        open_btn = QPushButton("Open folder")
        open_btn.clicked.connect(
            lambda: open_folder(self._orchestrator.state.output_folder)
        )
        layout.addWidget(open_btn)

        return group

    def _load_settings(self) -> None:
        s = self._settings
        for widget in (
            self._mic_cb,
            self._name_edit,
            self._timestamp_cb,
            self._model_combo,
            self._language_combo,
            self._gpu_cb,
        ):
            widget.blockSignals(True)

        self._mic_cb.setChecked(s.include_microphone)
        self._name_edit.setText(s.recording_name)
        self._timestamp_cb.setChecked(s.append_timestamp)
        self._model_combo.setCurrentIndex(max(0, self._model_combo.findData(s.model_size.value)))
        self._language_combo.setCurrentIndex(
            max(0, self._language_combo.findData(s.language.value))
        )
        self._gpu_cb.setChecked(s.use_gpu)

        for widget in (
            self._mic_cb,
            self._name_edit,
            self._timestamp_cb,
            self._model_combo,
            self._language_combo,
            self._gpu_cb,
        ):
            widget.blockSignals(False)

        if s.window_geometry:
            self.setGeometry(*s.window_geometry)

    def _current_model(self) -> ModelSpec:
        return ModelSpec(ModelSize(self._model_combo.currentData()))

    def _current_language(self) -> Language:
        return Language(self._language_combo.currentData())

    def _on_index_edited(self) -> None:
        text = self._index_edit.text().strip()
        self._orchestrator.set_device_index(int(text) if text else None)

    def _on_mic_toggled(self, checked: bool) -> None:
        self._orchestrator.set_include_microphone(checked)
        self._settings.include_microphone = checked
        self._settings.save()

    def _on_device_activated(self, row: int) -> None:
        device_id = self._device_combo.itemData(row)
        if device_id is not None:
            self._orchestrator.select_device(device_id)

    def _on_devices_changed(self, devices: List[AudioDevice]) -> None:
        self._device_combo.clear()
        if not devices:
            self._device_combo.addItem("No devices detected", None)
            return
        for device in devices:
            self._device_combo.addItem(device.label, device.id)

    def _save_recording_options(self) -> None:
        self._settings.recording_name = self._name_edit.text()
        self._settings.append_timestamp = self._timestamp_cb.isChecked()
        self._settings.save()

    def _save_transcription_options(self) -> None:
        self._settings.model_size = ModelSize(self._model_combo.currentData())
        self._settings.language = self._current_language()
        self._settings.use_gpu = self._gpu_cb.isChecked()
        self._settings.save()

    def _on_start_clicked(self) -> None:
        self._orchestrator.start_recording(
            self._name_edit.text(), self._timestamp_cb.isChecked()
        )

    def _on_transcribe_clicked(self) -> None:
        self._orchestrator.transcribe_last_audio(
            self._current_model(),
            self._current_language(),
            self._gpu_cb.isChecked(),
        )

    def _on_choose_clicked(self) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self,
            "Choose audio",
            str(self._orchestrator.state.output_folder),
            AUDIO_FILE_FILTER,
        )
        if path:
            self._orchestrator.choose_audio_file(path)

    def _on_change_folder_clicked(self) -> None:
        folder = QFileDialog.getExistingDirectory(
            self, "Choose output folder", str(self._orchestrator.state.output_folder)
        )
        if folder:
            self._orchestrator.set_output_folder(folder)

    def _on_output_folder_changed(self, folder: str) -> None:
        self._folder_label.setText(folder)
        self._settings.output_folder = folder
        self._settings.save()

    def _on_download_progress(self, fraction: float) -> None:
        self._download_progress.setValue(int(fraction * 100))

    def _refresh_controls(self) -> None:
        state = self._orchestrator.state
        busy = self._orchestrator.phase != SessionPhase.IDLE

        self._start_btn.setText("Recording..." if state.is_recording else "Start recording")
        self._start_btn.setEnabled(
            not state.is_recording and state.selected_device_index is not None
        )
        self._stop_btn.setEnabled(state.is_recording and not state.is_stopping)
        self._transcribe_btn.setText(
            "Transcribing..." if state.is_transcribing else "Transcribe last audio"
        )
        self._transcribe_btn.setEnabled(not busy and state.last_audio_path is not None)
        self._choose_btn.setEnabled(not state.is_recording)
        self._download_btn.setEnabled(not state.is_downloading)
        self._cancel_download_btn.setEnabled(state.is_downloading)
        self._download_progress.setVisible(state.is_downloading)
        for btn in self._device_buttons:
            btn.setEnabled(not state.is_detecting and not state.is_recording)

        if state.selected_device_index is not None and not self._index_edit.hasFocus():
            self._index_edit.setText(str(state.selected_device_index))
        if state.selected_device_id is not None:
            row = self._device_combo.findData(state.selected_device_id)
            if row >= 0:
                self._device_combo.setCurrentIndex(row)

        self._audio_label.setText(
            f"Last audio: {state.last_audio_path}" if state.last_audio_path else ""
        )
        self._transcript_label.setText(
            f"Transcript: {state.last_transcript_path}"
            if state.last_transcript_path
            else ""
        )
        if self._log_view.toPlainText() != state.last_transcriber_log:
            self._log_view.setPlainText(state.last_transcriber_log)

    def closeEvent(self, event):
        geo = self.geometry()
        self._settings.window_geometry = (geo.x(), geo.y(), geo.width(), geo.height())
        self._settings.save()
        super().closeEvent(event)
