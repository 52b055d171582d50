"""Core configuration, persistence, errors and access control."""
