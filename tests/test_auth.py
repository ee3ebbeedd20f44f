import pytest

from jigsaw_app import auth
from jigsaw_app.errors import AuthFailure, NotFoundFailure


def test_signup_normalizes_and_hashes(session_factory):
    with session_factory() as db:
        user = auth.signup(db, "  Priya ", "  Priya Sharma ", "hunter2")

        assert user.username == "priya"
        assert user.full_name == "Priya Sharma"
        assert user.pieces == []
        assert user.password_hash != "hunter2"
        assert auth.verify_password("hunter2", user.password_hash)


def test_signup_rejects_duplicates_case_insensitively(session_factory):
    with session_factory() as db:
        auth.signup(db, "arjun", "Arjun", "pw")
        with pytest.raises(AuthFailure, match="already exists"):
            auth.signup(db, "ARJUN", "Someone Else", "pw2")


def test_signup_requires_username_and_password(session_factory):
    with session_factory() as db:
        with pytest.raises(AuthFailure):
            auth.signup(db, "   ", "Blank", "pw")
        with pytest.raises(AuthFailure):
            auth.signup(db, "blank", "Blank", "")


def test_login(session_factory):
    with session_factory() as db:
        auth.signup(db, "neha", "Neha", "secret")

        assert auth.login(db, "Neha", "secret").username == "neha"
        with pytest.raises(AuthFailure, match="Password is incorrect"):
            auth.login(db, "neha", "wrong")
        with pytest.raises(NotFoundFailure):
            auth.login(db, "ghost", "secret")
