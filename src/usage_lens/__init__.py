"""Usage Lens - analytics over per-device phone usage snapshots."""

__version__ = "0.1.0"
