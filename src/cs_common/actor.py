"""The identity performing an operation.

Every mutating operation receives an explicit Actor. There is no process-wide
"current admin" or system-user constant.
"""

from dataclasses import dataclass

from src.cs_common.enums import ActorKind


@dataclass(frozen=True)
class Actor:
    id: str
    kind: ActorKind

    @property
    def is_admin(self) -> bool:
        return self.kind == ActorKind.ADMIN

    @property
    def is_system(self) -> bool:
        return self.kind == ActorKind.SYSTEM

    @classmethod
    def user(cls, user_id: str) -> "Actor":
        return cls(id=user_id, kind=ActorKind.USER)

    @classmethod
    def admin(cls, admin_id: str) -> "Actor":
        return cls(id=admin_id, kind=ActorKind.ADMIN)

    @classmethod
    def system(cls, name: str = "payment_verifier") -> "Actor":
        return cls(id=name, kind=ActorKind.SYSTEM)
