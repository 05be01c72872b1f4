"""Per-user notifications and activity feed."""
