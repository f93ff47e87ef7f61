"""In-process identity accessor."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class SessionIdentity:
    """Identity holder whose user id can be swapped on sign-in and sign-out."""

    user_id: str | None = None

    def current_user_id(self) -> str | None:
        """Return the signed-in user id, treating blank ids as signed out."""
        if self.user_id is None or not self.user_id.strip():
            return None
        return self.user_id

    def sign_in(self, user_id: str) -> None:
        self.user_id = user_id

    def sign_out(self) -> None:
        self.user_id = None


__all__ = ["SessionIdentity"]
