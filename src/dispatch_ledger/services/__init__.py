"""Domain services for route planning, delivery and settlement."""
