from dataclasses import replace
from typing import Any, Optional

from fastapi.testclient import TestClient
import jwt
import pytest

from novaguard.accounts import UsernameTaken
from novaguard.config import DefenseConfig, settings
from novaguard.main import create_app


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAccountDirectory:
    def __init__(self) -> None:
        self.passwords = {"alice": "correct-horse"}

    def verify_credentials(self, username: str, password: str) -> Optional[dict[str, Any]]:
        if self.passwords.get(username) != password:
            return None
        return {"username": username, "authority": 0}

    def register(self, username: str, password: str, email: str) -> dict[str, Any]:
        if username in self.passwords:
            raise UsernameTaken(username)
        self.passwords[username] = password
        return {"username": username, "email": email}


def make_settings(cors_origins: Optional[list[str]] = None, **defense_overrides: Any):
    defense = replace(DefenseConfig(), **defense_overrides)
    return replace(settings, defense=defense, cors_origins=cors_origins or ["*"])


def admin_headers(is_admin: bool = True) -> dict[str, str]:
    token = jwt.encode(
        {"sub": "1", "username": "gamemaster", "is_admin": is_admin},
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return {"Authorization": f"Bearer {token}"}


def from_ip(ip: str) -> dict[str, str]:
    return {"X-Forwarded-For": ip}


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def accounts() -> FakeAccountDirectory:
    return FakeAccountDirectory()


@pytest.fixture()
def build_client(clock, accounts):
    def _build(**overrides: Any):
        app = create_app(make_settings(**overrides), accounts=accounts, clock=clock)
        return TestClient(app)

    return _build
