"""Command-line support: logging, process settings and config loading."""
