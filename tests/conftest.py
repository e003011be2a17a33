import os

os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["CHAT_CHANGE_FEED_ENABLED"] = "false"

from dataclasses import dataclass
from typing import Dict

import pytest
from fastapi.testclient import TestClient

from app.core.security import create_access_token
from app.main import create_app
from app.models.user import User, UserRole
from app.repositories import ChatRepositories
from app.services.chat_service import ChatService


@dataclass
class Users:
    customer: User
    other_customer: User
    staff: User
    other_staff: User
    admin: User


def token_for(user: User) -> str:
    return create_access_token({"sub": user.id})


def auth_header(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def repos() -> ChatRepositories:
    return ChatRepositories.in_memory()


@pytest.fixture
def users(repos) -> Users:
    directory = repos.users
    return Users(
        customer=directory.add(User(email="alice@petshop.com", username="alice", role=UserRole.CUSTOMER)),
        other_customer=directory.add(User(email="bob@petshop.com", username="bob", role=UserRole.CUSTOMER)),
        staff=directory.add(User(email="sam@petshop.com", username="sam", role=UserRole.STAFF)),
        other_staff=directory.add(User(email="tina@petshop.com", username="tina", role=UserRole.STAFF)),
        admin=directory.add(User(email="root@petshop.com", username="root", role=UserRole.ADMIN)),
    )


@pytest.fixture
def service(repos) -> ChatService:
    return ChatService(repos.rooms, repos.messages, repos.users)


@pytest.fixture
def client(repos, users):
    with TestClient(create_app(repos)) as test_client:
        yield test_client
