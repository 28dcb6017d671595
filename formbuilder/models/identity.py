"""Caller identity supplied by the upstream authentication gateway."""

from __future__ import annotations

from pydantic import BaseModel


class Role:
    ADMIN = "admin"
    USER = "user"

    ALL = (ADMIN, USER)


class Identity(BaseModel):
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


__all__ = ["Role", "Identity"]
