"""Knowledge compression and retrieval over a markdown memory corpus."""

__version__ = "0.1.0"
