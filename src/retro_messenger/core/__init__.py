"""Configuration, error taxonomy and composition root."""
