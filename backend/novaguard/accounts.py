from __future__ import annotations

from typing import Any, Optional, Protocol


class AccountDirectoryError(RuntimeError):
    """Raised by an account directory that cannot serve the request."""


class UsernameTaken(AccountDirectoryError):
    """Raised when registering a name that already exists."""


class AccountDirectory(Protocol):
    """The portal's account store, as seen by the auth routes.

    ``verify_credentials`` returns the public account fields on success and
    ``None`` on a wrong username or password.
    """

    def verify_credentials(self, username: str, password: str) -> Optional[dict[str, Any]]:
        ...

    def register(self, username: str, password: str, email: str) -> dict[str, Any]:
        ...


class UnconfiguredAccountDirectory:
    def verify_credentials(self, username: str, password: str) -> Optional[dict[str, Any]]:
        raise AccountDirectoryError("Account directory is not configured")

    def register(self, username: str, password: str, email: str) -> dict[str, Any]:
        raise AccountDirectoryError("Account directory is not configured")
