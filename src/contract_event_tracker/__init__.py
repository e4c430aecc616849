"""Contract Event Tracker - smart-contract event indexing and anomaly alerting."""

__version__ = "0.1.0"
