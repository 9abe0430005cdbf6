from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("forum_auth.security")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"forum_auth.{name}")


def redact_email(email: str | None) -> str:
    if not email or "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def log_security_event(
    action: str,
    account_id: int | None = None,
    actor_id: int | None = None,
    **metadata: Any,
) -> None:
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action,
        "account_id": account_id,
        "actor_id": actor_id,
        "metadata": metadata,
    }
    logger.info(json.dumps(entry, default=str))
