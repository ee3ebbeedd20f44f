import logging

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import AuthFailure, NotFoundFailure, StoreFailure, UsernameTakenFailure
from .models import User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    """
    Hash a plain-text password using PBKDF2-SHA256.
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed: str) -> bool:
    """
    Verify a candidate password against a stored hash.
    """
    return pwd_context.verify(plain_password, hashed)


def normalize_username(username: str) -> str:
    return username.strip().lower()


def get_user(db: Session, username: str) -> User | None:
    try:
        return db.execute(
            select(User).where(User.username == normalize_username(username))
        ).scalar_one_or_none()
    except SQLAlchemyError as e:
        raise StoreFailure(f"Error fetching user: {e}") from e


def signup(db: Session, username: str, full_name: str, password: str) -> User:
    """
    Create a user with an empty piece set.

    The username is trimmed and lowercased and never changes afterwards.
    """
    clean_username = normalize_username(username)
    if not clean_username or not password:
        raise AuthFailure("Username and password required")

    if get_user(db, clean_username) is not None:
        logger.info("Signup rejected, user already exists: %s", clean_username)
        raise UsernameTakenFailure("User already exists with this username")

    user = User(
        username=clean_username,
        full_name=full_name.strip(),
        password_hash=hash_password(password),
        pieces=[],
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise UsernameTakenFailure("User already exists with this username") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreFailure(f"Error creating user: {e}") from e
    db.refresh(user)

    logger.info("User added: %s", user.username)
    return user


def login(db: Session, username: str, password: str) -> User:
    user = get_user(db, username)
    if user is None:
        raise NotFoundFailure("No user found with this username")
    if not verify_password(password, user.password_hash):
        raise AuthFailure("Password is incorrect")
    return user
