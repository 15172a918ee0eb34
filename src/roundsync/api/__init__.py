"""Local HTTP state endpoint."""
