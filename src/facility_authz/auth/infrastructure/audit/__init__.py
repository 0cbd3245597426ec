"""Audit sinks."""

from .logging_audit_sink import LoggingAuditSink

__all__ = ["LoggingAuditSink"]
