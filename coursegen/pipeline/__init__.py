"""Course generation pipeline."""
