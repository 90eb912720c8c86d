"""Command line interface for ADLink."""
