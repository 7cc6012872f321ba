#!/usr/bin/env python3
"""
isothreshold Desktop Demo

Thresholds a radial field sampled on a tetrahedralized box and shows the
clipped surface together with the min/max isosurfaces.
"""

import sys
import logging
import traceback

import numpy as np

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

# Silence noisy third-party loggers
logging.getLogger('trimesh').setLevel(logging.WARNING)
logging.getLogger('pyvista').setLevel(logging.WARNING)
logging.getLogger('vtkmodules').setLevel(logging.WARNING)


def exception_hook(exc_type, exc_value, exc_tb):
    """Global exception handler to log uncaught exceptions."""
    logger.error("Uncaught exception:", exc_info=(exc_type, exc_value, exc_tb))
    traceback.print_exception(exc_type, exc_value, exc_tb)


DEMO_GRID_SHAPE = (24, 24, 24)
DEMO_FIELD_NAME = 'radius'


def build_demo_block():
    """Box mesh with the distance to its center as the input component."""
    from isothreshold.core import Block, create_box_tetrahedra

    tet_mesh = create_box_tetrahedra(DEMO_GRID_SHAPE, (-1.0, -1.0, -1.0), (1.0, 1.0, 1.0))
    radius = np.linalg.norm(tet_mesh.vertices, axis=1)
    return Block.from_tetrahedral_mesh(tet_mesh, data={DEMO_FIELD_NAME: radius})


def main():
    """Main entry point."""
    sys.excepthook = exception_hook
    logger.info("Starting isothreshold demo...")

    from PyQt6.QtWidgets import QApplication, QMainWindow, QWidget, QHBoxLayout
    from pyvistaqt import QtInteractor

    from isothreshold.core import ThresholdController, ThresholdOptions
    from isothreshold.ui import ThresholdPanel
    from isothreshold.viewer import ThresholdViewer

    app = QApplication(sys.argv)
    app.setApplicationName("isothreshold")

    block = build_demo_block()
    controller = ThresholdController(
        block,
        DEMO_FIELD_NAME,
        ThresholdOptions(min=0.4, max=0.8, dynamic=False, inclusive=True)
    )

    window = QMainWindow()
    window.setWindowTitle("isothreshold")
    central = QWidget()
    layout = QHBoxLayout(central)

    plotter = QtInteractor(central)
    panel = ThresholdPanel(controller)
    panel.setFixedWidth(280)

    layout.addWidget(panel)
    layout.addWidget(plotter.interactor, stretch=1)
    window.setCentralWidget(central)

    viewer = ThresholdViewer(plotter, controller)
    plotter.reset_camera()

    window.resize(1200, 800)
    window.show()
    logger.info("Main window displayed")

    exit_code = app.exec()

    viewer.dispose()
    controller.dispose()
    plotter.close()
    return exit_code


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)
