"""vidproxy — probe-then-stream download proxy for remote media URLs."""

__version__ = "1.0.0"
