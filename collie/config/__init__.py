"""Configuration loading, validation and console definitions."""
