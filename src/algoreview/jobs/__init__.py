"""Analysis job store, submission, and runner."""
