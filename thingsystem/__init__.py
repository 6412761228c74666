"""Thing System: versioned, composable content units with a self-hosting core."""

__version__ = "1.0.0"
