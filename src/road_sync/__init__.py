"""Road network synchronization from OpenStreetMap into the asset store."""

__version__ = "1.0.0"
