"""PDF rendering services."""
