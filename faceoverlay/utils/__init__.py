"""Image buffer I/O and logging helpers."""
