"""Scoreline — fair football prices from a calibrated two-period Poisson model."""

__version__ = "0.1.0"
