"""Progress push notifications."""
