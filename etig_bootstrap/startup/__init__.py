"""Bootstrap command: configuration, credentials, task definitions and CLI."""
