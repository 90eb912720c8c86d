"""Application services: credential cache, diagnostics and start-up bootstrap."""
