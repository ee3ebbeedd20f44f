import logging
import random
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ..auth import normalize_username
from ..config import MAX_NEW_PIECES, PIECE_COUNT
from ..errors import AlreadyCompleteFailure, NotFoundFailure, StoreFailure
from ..models import User

logger = logging.getLogger(__name__)

ALL_PIECES = frozenset(range(PIECE_COUNT))


@dataclass(frozen=True)
class AwardResult:
    pieces: list[int]
    new_pieces: list[int] = field(default_factory=list)
    complete: bool = False


class PieceAwardLedger:
    """Grants random, currently unowned grid pieces to a user."""

    def __init__(self, session_factory: sessionmaker, rng: random.Random | None = None):
        self.session_factory = session_factory
        self.rng = rng or random.Random()

    def award_random_pieces(self, username: str, max_new: int = MAX_NEW_PIECES) -> AwardResult:
        if max_new < 1:
            raise ValueError("max_new must be >= 1")

        with self.session_factory() as db:
            try:
                user = db.execute(
                    select(User).where(User.username == normalize_username(username))
                ).scalar_one_or_none()
            except SQLAlchemyError as e:
                raise StoreFailure(f"Failed to find user: {e}") from e
            if user is None:
                raise NotFoundFailure(f"No user found with username {username!r}")

            owned = set(user.pieces or [])
            available = sorted(ALL_PIECES - owned)
            if not available:
                raise AlreadyCompleteFailure("You already have all pieces!")

            new_pieces = sorted(self.rng.sample(available, min(max_new, len(available))))
            updated = sorted(owned | set(new_pieces))

            # version_id_col turns this into a compare-and-set on users.version
            user.pieces = updated
            try:
                db.commit()
            except StaleDataError as e:
                db.rollback()
                logger.warning("Concurrent piece update for %s, award dropped", username)
                raise StoreFailure("Pieces were updated concurrently, try again") from e
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreFailure(f"Failed to update pieces: {e}") from e

        logger.info("Awarded pieces %s to %s", new_pieces, username)
        return AwardResult(
            pieces=updated,
            new_pieces=new_pieces,
            complete=set(updated) == ALL_PIECES,
        )
