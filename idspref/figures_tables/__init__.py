"""Inspection figures."""

from .plot_lt_histograms import plot_lt_histograms

__all__ = ["plot_lt_histograms"]
