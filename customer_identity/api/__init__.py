"""HTTP API for the customer identity service."""
