"""Configuration loading for the planning bot."""
