"""In-memory score cache."""
