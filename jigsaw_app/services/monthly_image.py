import base64
import binascii
import datetime as dt
import io
import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from PIL import Image, UnidentifiedImageError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..config import PART_COUNT
from ..errors import GenerationFailure, StoreFailure
from ..models import JigsawImagePart

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedImage:
    image_bytes: bytes
    prompt: str
    month: str
    generated: bool = False


def current_month_key(now: dt.datetime | None = None) -> str:
    return (now or dt.datetime.now()).strftime("%Y-%m")


def month_name_for(month_key: str) -> str:
    """'2025-08' -> 'August'"""
    return dt.datetime.strptime(month_key, "%Y-%m").strftime("%B")


def split_base64(text: str, parts: int = PART_COUNT) -> list[str]:
    """
    Splits text into `parts` contiguous chunks of len(text) // parts characters.
    The last chunk absorbs the remainder.
    """
    if parts < 1:
        raise ValueError("parts must be >= 1")
    size = len(text)
    chunk = size // parts
    out = []
    for i in range(parts):
        start = i * chunk
        end = size if i == parts - 1 else (i + 1) * chunk
        out.append(text[start:end])
    return out


def is_complete(parts: Sequence[JigsawImagePart], part_count: int = PART_COUNT) -> bool:
    ids = sorted(p.part_id for p in parts)
    return len(ids) >= part_count and ids == list(range(1, part_count + 1))


def reassemble(parts: Sequence[JigsawImagePart]) -> bytes:
    """Joins fragments by ascending id and decodes the result."""
    ordered = sorted(parts, key=lambda p: p.part_id)
    try:
        return base64.b64decode("".join(p.base64_part for p in ordered), validate=True)
    except (binascii.Error, ValueError) as e:
        raise StoreFailure(f"Stored fragments are not valid base64: {e}") from e


def ensure_image(image_bytes: bytes) -> None:
    try:
        with Image.open(io.BytesIO(image_bytes)) as im:
            im.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise StoreFailure(f"Stored fragments do not decode to an image: {e}") from e


class MonthlyImageCache:
    """
    Resolves a YYYY-MM month key to that month's puzzle image.

    A complete fragment set in the store is reassembled read-only. Anything
    less triggers prompt generation, then image generation, then a single
    transaction that writes all PART_COUNT fragments.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        prompt_fn: Callable[[str], str],
        image_fn: Callable[[str], bytes],
        part_count: int = PART_COUNT,
    ):
        self.session_factory = session_factory
        self.prompt_fn = prompt_fn
        self.image_fn = image_fn
        self.part_count = part_count

    def _load_parts(self, db: Session, month: str) -> list[JigsawImagePart]:
        return list(
            db.execute(
                select(JigsawImagePart).where(JigsawImagePart.month == month)
            ).scalars().all()
        )

    def _from_parts(self, parts: list[JigsawImagePart], month: str) -> ResolvedImage:
        image_bytes = reassemble(parts)
        ensure_image(image_bytes)
        return ResolvedImage(image_bytes=image_bytes, prompt=parts[0].prompt, month=month)

    def _load_complete(self, month: str) -> ResolvedImage | None:
        with self.session_factory() as db:
            try:
                parts = self._load_parts(db, month)
            except SQLAlchemyError as e:
                raise StoreFailure(f"Error reading fragments for {month}: {e}") from e
        if not is_complete(parts, self.part_count):
            return None
        return self._from_parts(parts, month)

    def resolve(self, month: str, month_name: str | None = None) -> ResolvedImage:
        """
        A malformed month key is a caller error and raises ValueError before
        the store is touched.
        """
        default_name = month_name_for(month)
        month_name = month_name or default_name

        with self.session_factory() as db:
            try:
                parts = self._load_parts(db, month)
            except SQLAlchemyError as e:
                raise StoreFailure(f"Error reading fragments for {month}: {e}") from e

        if is_complete(parts, self.part_count):
            return self._from_parts(parts, month)

        if parts:
            logger.warning(
                "Month %s has %d of %d fragments, regenerating", month, len(parts), self.part_count
            )

        prompt, image_bytes = self._generate(month_name)
        return self._save(month, prompt, image_bytes)

    def _generate(self, month_name: str) -> tuple[str, bytes]:
        prompt = (self.prompt_fn(month_name) or "").strip()
        if not prompt:
            raise GenerationFailure("Prompt generation returned an empty prompt")

        image_bytes = self.image_fn(prompt)
        if not image_bytes:
            raise GenerationFailure("No image data received")
        return prompt, image_bytes

    def _save(self, month: str, prompt: str, image_bytes: bytes) -> ResolvedImage:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        chunks = split_base64(encoded, self.part_count)

        with self.session_factory() as db:
            try:
                with db.begin():
                    existing = self._load_parts(db, month)
                    if is_complete(existing, self.part_count):
                        # another caller finished first; keep one image per month
                        logger.info("Month %s was generated concurrently, discarding ours", month)
                        return self._from_parts(existing, month)
                    if existing:
                        db.execute(delete(JigsawImagePart).where(JigsawImagePart.month == month))
                    db.add_all(
                        JigsawImagePart(
                            doc_id=JigsawImagePart.doc_id_for(month, i),
                            part_id=i,
                            base64_part=chunk,
                            prompt=prompt,
                            month=month,
                        )
                        for i, chunk in enumerate(chunks, start=1)
                    )
            except IntegrityError as e:
                # a concurrent writer committed this month after our re-read
                winner = self._load_complete(month)
                if winner is None:
                    logger.error("Failed to save fragments for %s: %s", month, e)
                    raise StoreFailure(f"Failed to save fragments for {month}: {e}") from e
                logger.info("Month %s was generated concurrently, discarding ours", month)
                return winner
            except SQLAlchemyError as e:
                logger.error("Failed to save fragments for %s: %s", month, e)
                raise StoreFailure(f"Failed to save fragments for {month}: {e}") from e

        logger.info("Saved %d fragments for %s", len(chunks), month)
        return ResolvedImage(image_bytes=image_bytes, prompt=prompt, month=month, generated=True)
