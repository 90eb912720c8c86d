"""Configuration loading for ADLink."""
