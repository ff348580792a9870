"""Configuration, database plumbing and external clients."""
