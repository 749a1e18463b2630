"""Cropwise: crop recommendation workflow and prediction history analytics."""

__version__ = "0.3.0"
