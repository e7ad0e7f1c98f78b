"""API routes for the CraftSync server."""
