"""
Bearer-token authentication.

Tokens are issued by the platform's identity service; this module only
verifies them and extracts the caller's roles. Roles arrive either as a
colon-separated string claim (``"ADMIN:USER"``) or as a list claim.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Optional

import jwt
from omegaconf import DictConfig

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Token missing, malformed, expired or signed with the wrong key."""


@dataclass(frozen=True)
class Principal:
    subject: str
    roles: FrozenSet[str] = frozenset()
    claims: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return bool(self.roles.intersection(_normalize_role(role) for role in roles))


def _normalize_role(role: str) -> str:
    role = role.strip().upper()
    return role[len("ROLE_"):] if role.startswith("ROLE_") else role


class JWTAuthenticator:
    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        issuer: Optional[str] = None,
        role_claim: str = "userRole",
        roles_claim: str = "roles",
    ) -> None:
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.issuer = issuer
        self.role_claim = role_claim
        self.roles_claim = roles_claim

    @classmethod
    def from_settings(cls, settings: DictConfig) -> "JWTAuthenticator":
        security = settings.security
        return cls(
            secret_key=str(security.jwt_secret),
            algorithm=str(security.jwt_algorithm),
            issuer=security.jwt_issuer,
            role_claim=str(security.role_claim),
            roles_claim=str(security.roles_claim),
        )

    def authenticate(self, token: str) -> Principal:
        """
        Verify signature, expiry and (when configured) issuer.

        Raises:
            AuthenticationError: If the token cannot be trusted
        """
        options = {"require": ["sub", "exp"], "verify_iss": self.issuer is not None}
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options=options,
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            logger.warning("Rejected bearer token: %s", exc)
            raise AuthenticationError(f"Invalid token: {exc}") from exc

        return Principal(subject=str(payload["sub"]), roles=self._extract_roles(payload), claims=payload)

    def _extract_roles(self, payload: Dict[str, Any]) -> FrozenSet[str]:
        roles = set()
        joined = payload.get(self.role_claim)
        if isinstance(joined, str):
            roles.update(part for part in joined.split(":") if part.strip())
        listed = payload.get(self.roles_claim)
        if isinstance(listed, (list, tuple)):
            roles.update(str(role) for role in listed)
        return frozenset(_normalize_role(role) for role in roles)
