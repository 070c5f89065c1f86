"""Actor identity and client-scope checks.

Coaches and admins are elevated and may act on any client. A client may
only read their own records and may not mutate anything.
"""

from dataclasses import dataclass

from .errors import AuthorizationError, ValidationError

ROLES = ("client", "coach", "admin")
ELEVATED_ROLES = ("coach", "admin")


@dataclass(frozen=True)
class Actor:
    id: str
    role: str = "client"

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValidationError(f"Unknown role: {self.role}", field="role", expected=list(ROLES))

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES


SYSTEM_ACTOR = Actor(id="system", role="admin")


def ensure_can_read(actor: Actor, client_id: str) -> None:
    if actor.is_elevated or actor.id == client_id:
        return
    raise AuthorizationError(
        f"Actor {actor.id} may not access records of client {client_id}",
        field="client_id",
        expected=actor.id,
    )


def ensure_elevated(actor: Actor, action: str) -> None:
    if not actor.is_elevated:
        raise AuthorizationError(
            f"Only coaches and admins can {action}",
            field="role",
            expected=list(ELEVATED_ROLES),
        )
