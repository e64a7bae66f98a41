"""Page resolution for chunked documents."""
