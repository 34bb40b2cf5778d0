"""Route liquidation."""
