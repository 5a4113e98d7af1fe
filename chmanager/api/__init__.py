"""HTTP API: schemas and routes."""
