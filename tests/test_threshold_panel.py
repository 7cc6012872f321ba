import os
import unittest

os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')

try:
    from PyQt6.QtWidgets import QApplication
    from isothreshold.ui import ThresholdPanel
    QT_AVAILABLE = True
except ImportError:
    QT_AVAILABLE = False

from isothreshold.core import ThresholdController
from tests.utils import box_block


@unittest.skipUnless(QT_AVAILABLE, "PyQt6 not installed")
class TestThresholdPanel(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = QApplication.instance() or QApplication([])

    def setUp(self):
        self.block = box_block()
        self.controller = ThresholdController(self.block, 'temperature', {'min': 0.3, 'max': 0.7})
        self.panel = ThresholdPanel(self.controller)
        self.changes = []
        self.errors = []
        self.panel.threshold_changed.connect(lambda: self.changes.append(True))
        self.panel.error.connect(self.errors.append)

    def tearDown(self):
        self.panel.deleteLater()

    def test_shows_controller_state(self):
        self.assertAlmostEqual(self.panel.min_spinbox.value(), 0.3)
        self.assertAlmostEqual(self.panel.max_spinbox.value(), 0.7)
        self.assertTrue(self.panel.inclusive_cb.isChecked())
        self.assertIn('<=', self.panel.expression_label.text())

    def test_spinbox_updates_controller(self):
        self.panel.min_spinbox.setValue(0.4)
        self.assertEqual(self.controller.min, 0.4)
        self.assertEqual(self.controller.min_surface.isovalue, 0.4)
        self.assertEqual(len(self.changes), 1)

    def test_checkbox_updates_controller(self):
        self.panel.inclusive_cb.setChecked(False)
        self.assertFalse(self.controller.inclusive)
        self.assertNotIn('<=', self.panel.expression_label.text())

    def test_empty_interval_is_labelled(self):
        self.panel.min_spinbox.setValue(0.9)
        self.assertIn('(empty)', self.panel.expression_label.text())

    def test_rejected_change_is_reported(self):
        self.controller.dispose()
        self.panel.max_spinbox.setValue(0.5)

        self.assertEqual(len(self.errors), 1)
        self.assertEqual(self.changes, [])
        self.assertFalse(self.panel.status_label.isHidden())
        # The spin box is put back to the controller's value
        self.assertAlmostEqual(self.panel.max_spinbox.value(), 0.7)


if __name__ == '__main__':
    unittest.main()
