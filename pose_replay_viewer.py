import sys, os
from dataclasses import dataclass
from typing import Optional, Tuple

from absl import logging as absl_logging
absl_logging.set_verbosity(absl_logging.ERROR)

from PyQt6 import QtCore, QtGui, QtWidgets

from pose_overlay import (
    MIN_PART_CONFIDENCE, MIN_POSE_CONFIDENCE, SKELETON_COLOR,
    adjacent_keypoints, opacity_ramp,
)
from pose_records import (
    PoseRecordError, PoseSequence, load_pose_records, save_pose_records,
)

# ------------ Config ------------
SAVE_DIR = "records"
SOURCE_SIZE = (1280, 720)     # frame size the poses were recorded at
MIN_SPAN = 20                 # smallest scrub window, in frames
DEFAULT_RANGE = (10, 20)


# ------------ Scrubbing ------------
@dataclass
class ScrubRange:
    """
    [lo, hi) window of frames to replay. Dragging only the upper handle keeps the
    window width from before the drag, so the trail slides instead of stretching.
    """
    lo: int = DEFAULT_RANGE[0]
    hi: int = DEFAULT_RANGE[1]
    _drag_lo: Optional[int] = None
    _drag_span: int = 0

    def begin_drag(self):
        self._drag_lo = self.lo
        self._drag_span = self.hi - self.lo

    def finish_drag(self, lo: int, hi: int):
        if self._drag_lo is not None and lo == self._drag_lo:
            lo = hi - self._drag_span
        self.lo, self.hi = lo, hi
        self._drag_lo = None

    def clamp(self, length: int) -> Tuple[int, int]:
        """Window bounded by a sequence of `length` frames."""
        hi = min(self.hi, length)
        lo = min(max(self.lo, 0), max(0, length - MIN_SPAN))
        return lo, max(lo, hi)


# ------------ PyQt Widgets ------------
class ReplayCanvas(QtWidgets.QWidget):
    def __init__(self, parent=None):
        super().__init__(parent)
        self.sequence = PoseSequence()
        self.window: Tuple[int, int] = (0, 0)
        self.source_size = SOURCE_SIZE
        self.skeleton_color = SKELETON_COLOR
        self.show_points = True
        self.show_skeleton = True

    def sizeHint(self):
        return QtCore.QSize(720, 405)

    def set_sequence(self, sequence: PoseSequence):
        self.sequence = sequence
        self.window = (0, len(sequence))
        self.update()

    def set_window(self, lo: int, hi: int):
        self.window = (lo, hi)
        self.update()

    def _scale(self) -> Tuple[float, float, float]:
        sw, sh = self.source_size
        s = min(self.width() / float(sw), self.height() / float(sh))
        return s, (self.width() - sw * s) / 2.0, (self.height() - sh * s) / 2.0

    def paintEvent(self, e: QtGui.QPaintEvent):
        painter = QtGui.QPainter(self)
        painter.setRenderHints(QtGui.QPainter.RenderHint.Antialiasing)
        painter.fillRect(self.rect(), QtGui.QColor(5, 5, 23))

        lo, hi = self.window
        poses = list(self.sequence[lo:hi])
        if not poses:
            painter.setPen(QtGui.QPen(QtGui.QColor(200, 200, 200)))
            painter.drawText(12, 24, "No pose records loaded.")
            return

        s, ox, oy = self._scale()
        # oldest pose faintest, newest in white
        colors = opacity_ramp(len(poses), self.skeleton_color, background=(23, 5, 5))

        def to_widget(kp):
            return QtCore.QPointF(ox + kp.x * s, oy + kp.y * s)

        for pose, (b, g, r) in zip(poses, colors):
            if pose.score < MIN_POSE_CONFIDENCE:
                continue
            qcolor = QtGui.QColor(r, g, b)
            if self.show_skeleton:
                painter.setPen(QtGui.QPen(qcolor, 2))
                for ka, kb in adjacent_keypoints(pose, MIN_PART_CONFIDENCE):
                    painter.drawLine(to_widget(ka), to_widget(kb))
            if self.show_points:
                painter.setPen(QtGui.QPen(qcolor))
                painter.setBrush(QtGui.QBrush(qcolor))
                for kp in pose.keypoints:
                    if kp.score >= MIN_PART_CONFIDENCE:
                        painter.drawEllipse(to_widget(kp), 3, 3)

        painter.setPen(QtGui.QPen(QtGui.QColor(255, 255, 255, 220), 1))
        painter.drawText(10, 20, f"frames {lo}..{hi - 1} of {len(self.sequence)}")


class MainWindow(QtWidgets.QMainWindow):
    def __init__(self, path: Optional[str] = None):
        super().__init__()
        self.setWindowTitle("Pose Replay")

        self.canvas = ReplayCanvas()
        self.setCentralWidget(self.canvas)
        self.scrub = ScrubRange()

        dock = QtWidgets.QDockWidget("Controls", self)
        panel = QtWidgets.QWidget(); dock.setWidget(panel)
        self.addDockWidget(QtCore.Qt.DockWidgetArea.RightDockWidgetArea, dock)
        form = QtWidgets.QFormLayout(panel)

        self.btn_open = QtWidgets.QPushButton("Load Records")
        self.btn_export = QtWidgets.QPushButton("Download Data")
        self.btn_clear = QtWidgets.QPushButton("Clear Data")
        self.btn_open.clicked.connect(self._open_records)
        self.btn_export.clicked.connect(self._export_records)
        self.btn_clear.clicked.connect(self._clear_records)

        self.slider_lo = QtWidgets.QSlider(QtCore.Qt.Orientation.Horizontal)
        self.slider_hi = QtWidgets.QSlider(QtCore.Qt.Orientation.Horizontal)
        for sl in (self.slider_lo, self.slider_hi):
            sl.setRange(0, 0)
            sl.sliderPressed.connect(lambda: self.scrub.begin_drag())
            sl.valueChanged.connect(self._on_slider_changed)
            sl.sliderReleased.connect(self._on_slider_released)

        self.points_chk = QtWidgets.QCheckBox("Show points"); self.points_chk.setChecked(True)
        self.skeleton_chk = QtWidgets.QCheckBox("Show skeleton"); self.skeleton_chk.setChecked(True)
        self.points_chk.toggled.connect(lambda v: self._set_canvas_flag("show_points", v))
        self.skeleton_chk.toggled.connect(lambda v: self._set_canvas_flag("show_skeleton", v))

        form.addRow(self.btn_open)
        form.addRow("From", self.slider_lo)
        form.addRow("To", self.slider_hi)
        form.addRow(self.points_chk, self.skeleton_chk)
        form.addRow(self.btn_export, self.btn_clear)

        self.status = self.statusBar()
        self.resize(1100, 620)

        if path:
            self.load(path)

    # ----- data -----
    def load(self, path: str) -> bool:
        try:
            seq = load_pose_records(path)
        except (OSError, PoseRecordError) as e:
            self.status.showMessage(f"Could not load {path}: {e}")
            return False
        self._set_sequence(seq)
        self.status.showMessage(f"Loaded {len(seq)} poses from {os.path.basename(path)}")
        return True

    def _set_sequence(self, seq: PoseSequence):
        self.canvas.set_sequence(seq)
        n = len(seq)
        for sl in (self.slider_lo, self.slider_hi):
            sl.blockSignals(True)
            sl.setRange(0, n)
            sl.blockSignals(False)
        self.scrub = ScrubRange(*self._default_range(n))
        self._sync_sliders()
        self._apply_window()

    @staticmethod
    def _default_range(n: int) -> Tuple[int, int]:
        lo, hi = DEFAULT_RANGE
        return (lo, hi) if n > hi else (0, n)

    def _open_records(self):
        path, _ = QtWidgets.QFileDialog.getOpenFileName(self, "Load Pose Records", "", "JSON (*.json)")
        if path:
            self.load(path)

    def _export_records(self):
        if len(self.canvas.sequence) == 0:
            self.status.showMessage("Nothing to export.")
            return
        default = os.path.join(SAVE_DIR, "pose_records.json")
        path, _ = QtWidgets.QFileDialog.getSaveFileName(self, "Download Data", default, "JSON (*.json)")
        if not path:
            return
        save_pose_records(path, self.canvas.sequence)
        self.status.showMessage(f"Saved {path}")

    def _clear_records(self):
        self._set_sequence(PoseSequence())
        self.status.showMessage("Cleared.")

    def _set_canvas_flag(self, name: str, value: bool):
        setattr(self.canvas, name, value)
        self.canvas.update()

    # ----- scrubbing -----
    def _sync_sliders(self):
        for sl, v in ((self.slider_lo, self.scrub.lo), (self.slider_hi, self.scrub.hi)):
            sl.blockSignals(True)
            sl.setValue(v)
            sl.blockSignals(False)

    def _on_slider_changed(self, _val: int):
        lo, hi = sorted((self.slider_lo.value(), self.slider_hi.value()))
        self.canvas.set_window(lo, max(hi, lo + 1))

    def _on_slider_released(self):
        lo, hi = sorted((self.slider_lo.value(), self.slider_hi.value()))
        self.scrub.finish_drag(lo, hi)
        self._apply_window()
        self._sync_sliders()

    def _apply_window(self):
        lo, hi = self.scrub.clamp(len(self.canvas.sequence))
        self.canvas.set_window(lo, hi)


def main():
    app = QtWidgets.QApplication(sys.argv)
    w = MainWindow(sys.argv[1] if len(sys.argv) > 1 else None)
    w.show()
    sys.exit(app.exec())

if __name__ == "__main__":
    main()
