"""One-shot discovery command (``python -m atrium.discover``)."""
