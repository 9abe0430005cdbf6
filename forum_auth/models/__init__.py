from .account import ROLES, Account
from .challenge import OneTimeChallenge
from .db import Base
from .log import SecurityEvent

__all__ = [
	"Account",
	"Base",
	"OneTimeChallenge",
	"ROLES",
	"SecurityEvent",
]
