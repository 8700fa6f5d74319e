"""Unit tests for auth/store.py -- UserStore persistence.

Covers:
- create_user() assigns id/created_at and persists device tokens
- Lookups by email, id, and username
- UNIQUE(email) / UNIQUE(username) raise IntegrityError
- update_user() writes password/otp and replaces device tokens
- list_users() pagination in insertion order
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import DeviceToken, UserRecord
from auth.store import UserStore


def _user(n: int, **overrides) -> UserRecord:
    fields = {
        "username": f"user{n}",
        "email": f"user{n}@x.com",
        "password_hash": "hash",
        "otp": "1234",
        "tokens": [DeviceToken(device_id=f"dev{n}", token="")],
    }
    fields.update(overrides)
    return UserRecord(**fields)


class TestCreateAndLookup:
    def test_create_assigns_id_and_timestamp(self, store: UserStore) -> None:
        user = _user(1)
        uid = store.create_user(user)
        assert uid == user.id
        assert user.created_at

    def test_lookups_return_same_record(self, store: UserStore) -> None:
        uid = store.create_user(_user(1))
        by_email = store.get_by_email("user1@x.com")
        by_id = store.get_by_id(uid)
        by_name = store.get_by_username("user1")
        assert by_email == by_id == by_name
        assert by_email.otp == "1234"
        assert by_email.tokens == [DeviceToken(device_id="dev1", token="")]

    def test_missing_returns_none(self, store: UserStore) -> None:
        assert store.get_by_email("nobody@x.com") is None
        assert store.get_by_id(999) is None

    def test_duplicate_email_raises(self, store: UserStore) -> None:
        store.create_user(_user(1))
        with pytest.raises(IntegrityError):
            store.create_user(_user(2, email="user1@x.com"))

    def test_duplicate_username_raises(self, store: UserStore) -> None:
        store.create_user(_user(1))
        with pytest.raises(IntegrityError):
            store.create_user(_user(2, username="user1"))


class TestUpdate:
    def test_update_overwrites_device_token(self, store: UserStore) -> None:
        store.create_user(_user(1))
        user = store.get_by_email("user1@x.com")
        user.set_device_token("dev1", "tok-1")
        user.set_device_token("dev2", "tok-2")
        user.password_hash = "new-hash"
        assert store.update_user(user)

        reloaded = store.get_by_id(user.id)
        assert reloaded.password_hash == "new-hash"
        assert reloaded.tokens == [
            DeviceToken(device_id="dev1", token="tok-1"),
            DeviceToken(device_id="dev2", token="tok-2"),
        ]

    def test_update_unknown_user_returns_false(self, store: UserStore) -> None:
        ghost = _user(9)
        ghost.id = 12345
        assert not store.update_user(ghost)


class TestListUsers:
    def test_pagination_in_insertion_order(self, store: UserStore) -> None:
        for n in range(1, 13):
            store.create_user(_user(n))
        page = store.list_users(offset=5, limit=5)
        assert [u.username for u in page] == [f"user{n}" for n in range(6, 11)]
        assert page[0].tokens == [DeviceToken(device_id="dev6", token="")]

    def test_past_the_end_is_empty(self, store: UserStore) -> None:
        store.create_user(_user(1))
        assert store.list_users(offset=10, limit=10) == []

    def test_count_and_ping(self, store: UserStore) -> None:
        assert store.count_users() == 0
        store.create_user(_user(1))
        assert store.count_users() == 1
        assert store.ping()
