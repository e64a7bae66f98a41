"""PageSync - keeps a chunked text panel and PDF renderers on the same page."""

__version__ = "0.1.0"
