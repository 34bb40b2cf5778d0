"""Driver delivery outcomes and the route completion cascade."""
