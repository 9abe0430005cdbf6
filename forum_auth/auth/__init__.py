from .errors import (
    AuthError,
    AuthenticationError,
    AuthorizationError,
    DependencyError,
    ExpiryError,
    LockoutError,
    NotFoundError,
    ReuseError,
    ValidationError,
)
from .lockout import LockoutPolicy, LoginOutcome
from .mfa import MFAController
from .otp import ChallengePurpose
from .passwords import PasswordHasher
from .ratelimit import RateLimiter
from .service import AuthService
from .tokens import IdentityClaims, TokenIssuer

__all__ = [
    "AuthError",
    "AuthService",
    "AuthenticationError",
    "AuthorizationError",
    "ChallengePurpose",
    "DependencyError",
    "ExpiryError",
    "IdentityClaims",
    "LockoutError",
    "LockoutPolicy",
    "LoginOutcome",
    "MFAController",
    "NotFoundError",
    "PasswordHasher",
    "RateLimiter",
    "ReuseError",
    "TokenIssuer",
    "ValidationError",
]
