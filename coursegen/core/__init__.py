"""Shared infrastructure: database, logging, middleware and error handlers."""
