"""HTTP routers grouped by module."""
