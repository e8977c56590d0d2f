"""API clients for Audience Manager."""
