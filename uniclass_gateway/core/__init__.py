"""Core domain: models, errors, validation and formatting."""
