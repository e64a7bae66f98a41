"""Page synchronisation between document surfaces."""
