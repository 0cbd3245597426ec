"""Core building blocks shared by every facility-authz component."""
