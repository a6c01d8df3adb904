"""Course content generation engine."""
