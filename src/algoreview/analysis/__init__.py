"""External analysis capability and local fallback."""
