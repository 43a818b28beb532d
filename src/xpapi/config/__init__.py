"""Configuration — frozen section models, TOML discovery, unified settings."""
