"""Authorization domain: entities, value objects and protocols."""
