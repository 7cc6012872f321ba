from .threshold_panel import ThresholdPanel

__all__ = ['ThresholdPanel']
