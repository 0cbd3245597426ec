"""Application layer of the authorization engine."""
