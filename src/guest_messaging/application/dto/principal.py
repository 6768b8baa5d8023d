from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from guest_messaging.domain.value_objects.enums import PrincipalKind


@dataclass(frozen=True, slots=True)
class Principal:
    """Caller of the HTTP API: a producer service or an operator."""

    kind: PrincipalKind
    subject: str
    roles: list[str] = field(default_factory=list)

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> Principal:
        raw_kind = claims.get("kind", claims.get("role"))
        try:
            kind = PrincipalKind(raw_kind)
        except ValueError:
            kind = PrincipalKind.SERVICE
        roles = claims.get("roles") or []
        if isinstance(roles, str):
            roles = roles.split()
        return cls(kind=kind, subject=str(claims["sub"]), roles=list(roles))

    @property
    def is_admin(self) -> bool:
        return self.kind == PrincipalKind.ADMIN or "admin" in self.roles

    def __str__(self) -> str:
        return f"{self.kind}:{self.subject}"
