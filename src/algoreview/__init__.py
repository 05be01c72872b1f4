"""Code analysis jobs with a gamified progress ledger and leaderboard."""
