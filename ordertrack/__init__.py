"""OrderTrack - order lifecycle and archival reconciliation engine."""

__version__ = "0.1.0"
