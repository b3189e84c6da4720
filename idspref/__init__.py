"""Multi-lab infant-directed vs. adult-directed speech preference analysis."""

__version__ = "0.1.0"
