import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..config import LEADERBOARD_POLL_SECONDS
from ..errors import StoreFailure
from ..models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaderboardEntry:
    username: str
    full_name: str
    piece_count: int


def leaderboard(db: Session) -> list[LeaderboardEntry]:
    """
    All users by descending piece count. The JSON column can't be sized
    portably in SQL, so ranking happens here; sorted() is stable, ties keep
    store order.
    """
    try:
        users = db.execute(select(User).order_by(User.id)).scalars().all()
    except SQLAlchemyError as e:
        raise StoreFailure(f"Failed to load leaderboard: {e}") from e

    entries = [
        LeaderboardEntry(username=u.username, full_name=u.full_name, piece_count=len(u.pieces or []))
        for u in users
    ]
    return sorted(entries, key=lambda e: e.piece_count, reverse=True)


def _snapshot(session_factory: sessionmaker) -> list[LeaderboardEntry]:
    with session_factory() as db:
        return leaderboard(db)


async def watch_leaderboard(
    session_factory: sessionmaker,
    interval: float = LEADERBOARD_POLL_SECONDS,
) -> AsyncIterator[list[LeaderboardEntry]]:
    """Yields the ranking now, then again every time it changes."""
    previous = None
    while True:
        current = await asyncio.to_thread(_snapshot, session_factory)
        if current != previous:
            previous = current
            yield current
        await asyncio.sleep(interval)
