"""
Audit sink writing permission decisions to the audit logger.
"""
import json
import logging
from typing import Optional

from ....config.logging_config import AUDIT_LOGGER_NAME
from ...domain.value_objects.audit import AuditEvent


class LoggingAuditSink:
    """Writes one JSON line per decision; denials are logged at WARNING."""

    def __init__(self, audit_logger: Optional[logging.Logger] = None):
        self._logger = audit_logger or logging.getLogger(AUDIT_LOGGER_NAME)

    async def record(self, event: AuditEvent) -> None:
        level = logging.INFO if event.allowed else logging.WARNING
        self._logger.log(level, json.dumps(event.to_dict(), default=str))
