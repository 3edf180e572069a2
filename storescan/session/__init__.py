"""Session state: token cache, token acquisition and durable storage."""
