"""Experience, leveling, and streak ledger."""
