"""Authentication (passwords, JWTs, request dependencies) and authorization policy."""
