from .logger import get_logger, log_security_event, redact_email
from .audit import AuditLogger

__all__ = ["AuditLogger", "get_logger", "log_security_event", "redact_email"]
