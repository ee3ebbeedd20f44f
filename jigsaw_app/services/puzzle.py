import io
import logging
from typing import Iterable

from PIL import Image, ImageDraw

from ..config import GRID_SIZE, PIECE_COUNT

logger = logging.getLogger(__name__)

PLACEHOLDER_FILL = (224, 224, 224)
PLACEHOLDER_OUTLINE = (160, 160, 160)


def piece_box(index: int, width: int, height: int, grid: int = GRID_SIZE) -> tuple[int, int, int, int]:
    """Crop box of a row-major grid cell; cells are width // grid by height // grid."""
    if not 0 <= index < grid * grid:
        raise ValueError(f"piece index out of range: {index}")
    piece_w = width // grid
    piece_h = height // grid
    row, col = divmod(index, grid)
    left = col * piece_w
    top = row * piece_h
    return left, top, left + piece_w, top + piece_h


def _open(image_bytes: bytes) -> Image.Image:
    return Image.open(io.BytesIO(image_bytes)).convert("RGB")


def _png(im: Image.Image) -> bytes:
    buf = io.BytesIO()
    im.save(buf, format="PNG", optimize=True)
    return buf.getvalue()


def crop_piece(image_bytes: bytes, index: int) -> bytes:
    im = _open(image_bytes)
    return _png(im.crop(piece_box(index, *im.size)))


def render_progress(image_bytes: bytes, owned: Iterable[int]) -> bytes:
    """
    Draws the grid with owned cells taken from the image and every other
    cell as a grey placeholder.
    """
    im = _open(image_bytes)
    owned = set(owned)
    canvas = Image.new("RGB", im.size, PLACEHOLDER_FILL)
    draw = ImageDraw.Draw(canvas)

    for index in range(PIECE_COUNT):
        box = piece_box(index, *im.size)
        if index in owned:
            canvas.paste(im.crop(box), box[:2])
        else:
            draw.rectangle([box[0], box[1], box[2] - 1, box[3] - 1], outline=PLACEHOLDER_OUTLINE)

    if not owned:
        logger.debug("No pieces collected, rendering placeholders only")
    return _png(canvas)
