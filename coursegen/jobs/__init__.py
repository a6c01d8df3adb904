"""Generation job records, progress state machine and worker pool."""
