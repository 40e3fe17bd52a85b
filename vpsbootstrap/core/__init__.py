"""Core domain: models, engine, services, persistence."""
