"""Configuration package: environment-driven settings."""
