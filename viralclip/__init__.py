"""Turn YouTube videos into short vertical clips served over HTTP."""

__version__ = "0.1.0"
