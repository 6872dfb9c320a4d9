"""Infrastructure layer: configuration, database, logging."""
