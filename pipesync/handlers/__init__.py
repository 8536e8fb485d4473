"""Default workflow handlers for the content pipeline."""
