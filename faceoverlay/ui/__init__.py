"""Command line interface and configuration files."""
