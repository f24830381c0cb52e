"""Configuration, infrastructure clients and domain rules."""
