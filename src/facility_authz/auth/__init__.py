"""
Authorization engine: domain model, application services and infrastructure
adapters.
"""
