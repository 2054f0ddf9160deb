"""Lambda Cloud GPU instance manager."""
