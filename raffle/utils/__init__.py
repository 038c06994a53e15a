"""Small helpers shared across the raffle package (time sources)."""
