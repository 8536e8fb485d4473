"""pipesync — polling reconciliation for a human-edited content pipeline."""

__version__ = "0.1.0"
