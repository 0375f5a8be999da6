from __future__ import annotations

from dataclasses import dataclass

from .auth_state import AuthState


class AuthResult:
    """Terminal outcome of a coordinator operation."""


@dataclass(frozen=True)
class Success(AuthResult):
    auth_state: AuthState


@dataclass(frozen=True)
class Cancel(AuthResult):
    pass


@dataclass(frozen=True)
class Failed(AuthResult):
    message: str | None = None


CANCEL = Cancel()

# A token refresh has no user interaction to cancel.
RefreshResult = Success | Failed
