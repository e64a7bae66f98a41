"""Web interface for PageSync."""
