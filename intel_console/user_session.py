from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class UserSession:
    """The signed-in user, handed to view models at construction time."""

    username: str
    display_name: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.username or not self.username.strip():
            raise ValueError("username must be non-empty")

    @property
    def actor(self) -> str:
        return self.username.strip()

    @property
    def label(self) -> str:
        return self.display_name or self.actor
