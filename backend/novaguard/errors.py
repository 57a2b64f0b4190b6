from __future__ import annotations

from typing import Optional

from fastapi.responses import JSONResponse


class DefenseRejection(RuntimeError):
    """Base class for every request the defense pipeline refuses."""

    status_code = 400
    kind = "rejected"

    def __init__(
        self,
        error: str,
        retry_after: Optional[int] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        super().__init__(error)
        self.error = error
        self.retry_after = retry_after
        self.headers = dict(headers or {})

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"success": False, "error": self.error}
        if self.retry_after is not None:
            payload["retryAfter"] = self.retry_after
        return payload

    def to_response(self) -> JSONResponse:
        headers = dict(self.headers)
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return JSONResponse(status_code=self.status_code, content=self.to_payload(), headers=headers)


class Throttled(DefenseRejection):
    """Over a rate limit; the identity may retry after ``retry_after`` seconds."""

    status_code = 429
    kind = "throttled"


class Blocked(DefenseRejection):
    """The identity is on the block list."""

    status_code = 403
    kind = "blocked"


class MaliciousRequest(DefenseRejection):
    """A threat signature matched. The identity has already been blocked."""

    status_code = 403
    kind = "malicious"


class LoginLocked(DefenseRejection):
    status_code = 429
    kind = "locked"

    def __init__(self, error: str, wait_seconds: int) -> None:
        super().__init__(error)
        self.wait_seconds = wait_seconds

    def to_payload(self) -> dict[str, object]:
        payload = super().to_payload()
        payload["waitSeconds"] = self.wait_seconds
        return payload

    def to_response(self) -> JSONResponse:
        response = super().to_response()
        response.headers["Retry-After"] = str(self.wait_seconds)
        return response
