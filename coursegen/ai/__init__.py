"""Content generation backends."""
