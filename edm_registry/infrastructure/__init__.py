"""Infrastructure layer: configuration, settings and logging."""
