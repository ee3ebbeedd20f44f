import io
import random

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.orm import sessionmaker

from jigsaw_app.db import init_db, make_engine
from jigsaw_app.main import create_app


def make_png(size=(64, 64), color=(200, 30, 30)) -> bytes:
    im = Image.new("RGB", size, color)
    # distinct quadrant so crops are distinguishable
    im.paste((10, 200, 10), (0, 0, size[0] // 4, size[1] // 4))
    buf = io.BytesIO()
    im.save(buf, format="PNG")
    return buf.getvalue()


class FakeGenerators:
    def __init__(self, image_bytes: bytes | None = None, prompt: str = "Diwali lamps glowing over a river"):
        self.image_bytes = image_bytes if image_bytes is not None else make_png()
        self.prompt = prompt
        self.prompt_calls = []
        self.image_calls = []
        self.fail_prompt = None
        self.fail_image = None

    def prompt_fn(self, month_name: str) -> str:
        self.prompt_calls.append(month_name)
        if self.fail_prompt:
            raise self.fail_prompt
        return self.prompt

    def image_fn(self, prompt: str) -> bytes:
        self.image_calls.append(prompt)
        if self.fail_image:
            raise self.fail_image
        return self.image_bytes


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'jigsaw.db'}")
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def fakes():
    return FakeGenerators()


@pytest.fixture
def client(session_factory, fakes):
    app = create_app(
        session_factory=session_factory,
        prompt_fn=fakes.prompt_fn,
        image_fn=fakes.image_fn,
        rng=random.Random(7),
        poll_seconds=0.01,
    )
    with TestClient(app) as c:
        yield c
