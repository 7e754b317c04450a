"""Core configuration, persistence and HTTP plumbing."""
