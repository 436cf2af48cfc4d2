"""Domain modules for the resurfacing engine."""
