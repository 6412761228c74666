"""Core configuration, logging and startup helpers."""
