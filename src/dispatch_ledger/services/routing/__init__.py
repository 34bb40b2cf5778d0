"""Route sequencing and creation."""
