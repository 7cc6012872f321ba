"""
Threshold Panel

Qt controls for a ThresholdController: min / max spin boxes and an
inclusive checkbox. Changes are pushed to the controller immediately.
"""

import logging
from typing import Optional

from PyQt6.QtWidgets import (
    QWidget, QFormLayout, QDoubleSpinBox, QCheckBox, QLabel, QGroupBox, QVBoxLayout
)
from PyQt6.QtCore import pyqtSignal

from ..core.threshold import ThresholdController

logger = logging.getLogger(__name__)


class Colors:
    """Panel colors."""
    PRIMARY = "#007bff"
    GRAY = "#868e96"
    DANGER = "#c4183c"


class ThresholdPanel(QWidget):
    """Min / max / inclusive editor for a threshold effect."""

    # Emitted after the controller accepted a change
    threshold_changed = pyqtSignal()
    # Emitted with a message when the controller rejected a change
    error = pyqtSignal(str)

    SPIN_DECIMALS = 4

    def __init__(self, controller: ThresholdController, parent: Optional[QWidget] = None):
        super().__init__(parent)
        self.controller = controller
        self._setup_ui()
        self.sync_from_controller()

    def _setup_ui(self):
        layout = QVBoxLayout(self)
        layout.setContentsMargins(8, 8, 8, 8)

        group = QGroupBox(f"Threshold: {self.controller.input.name}")
        form = QFormLayout(group)

        lo, hi = self.controller.input.range
        span = max(hi - lo, 1.0)
        step = span / 100.0

        self.min_spinbox = QDoubleSpinBox()
        self.max_spinbox = QDoubleSpinBox()
        for spinbox in (self.min_spinbox, self.max_spinbox):
            spinbox.setDecimals(self.SPIN_DECIMALS)
            spinbox.setRange(lo - span, hi + span)
            spinbox.setSingleStep(step)
            spinbox.setKeyboardTracking(False)

        self.min_spinbox.valueChanged.connect(self._on_min_changed)
        self.max_spinbox.valueChanged.connect(self._on_max_changed)
        form.addRow("Min", self.min_spinbox)
        form.addRow("Max", self.max_spinbox)

        self.inclusive_cb = QCheckBox("Inclusive bounds")
        self.inclusive_cb.toggled.connect(self._on_inclusive_toggled)
        form.addRow(self.inclusive_cb)

        self.expression_label = QLabel()
        self.expression_label.setStyleSheet(f"color: {Colors.GRAY};")
        form.addRow(self.expression_label)

        self.status_label = QLabel()
        self.status_label.setStyleSheet(f"color: {Colors.DANGER};")
        self.status_label.setVisible(False)
        form.addRow(self.status_label)

        layout.addWidget(group)
        layout.addStretch()

    def sync_from_controller(self):
        """Show the controller's current state without feeding it back."""
        for widget, value in (
            (self.min_spinbox, self.controller.min),
            (self.max_spinbox, self.controller.max),
        ):
            widget.blockSignals(True)
            widget.setValue(value)
            widget.blockSignals(False)

        self.inclusive_cb.blockSignals(True)
        self.inclusive_cb.setChecked(self.controller.inclusive)
        self.inclusive_cb.blockSignals(False)

        self._update_expression_label()

    def _on_min_changed(self, value: float):
        self._apply(self.controller.set_min, value)

    def _on_max_changed(self, value: float):
        self._apply(self.controller.set_max, value)

    def _on_inclusive_toggled(self, checked: bool):
        self._apply(self.controller.set_inclusive, checked)

    def _apply(self, setter, value):
        # Exceptions must not escape a Qt slot
        try:
            setter(value)
        except Exception as e:
            logger.error(f"Threshold update failed: {e}")
            self.status_label.setText(str(e))
            self.status_label.setVisible(True)
            self.sync_from_controller()
            self.error.emit(str(e))
            return

        self.status_label.setVisible(False)
        self._update_expression_label()
        self.threshold_changed.emit()

    def _update_expression_label(self):
        predicate = self.controller.predicate
        text = predicate.to_expression(self.controller.input.name)
        if predicate.is_empty:
            text += "  (empty)"
        self.expression_label.setText(text)
