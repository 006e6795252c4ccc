"""Client configuration."""
