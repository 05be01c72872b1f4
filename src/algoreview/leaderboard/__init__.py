"""All-time leaderboard ranking."""
