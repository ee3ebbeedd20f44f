import os
from dotenv import load_dotenv

load_dotenv()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./jigsaw.db")

PROMPT_MODEL = os.getenv("PROMPT_MODEL", "gpt-4.1-mini")
IMAGE_MODEL = os.getenv("IMAGE_MODEL", "gpt-image-1")

# "openai" or "clipdrop"
IMAGE_BACKEND = os.getenv("IMAGE_BACKEND", "openai")
CLIPDROP_API_KEY = os.getenv("CLIPDROP_API_KEY", "")
CLIPDROP_URL = os.getenv("CLIPDROP_URL", "https://clipdrop-api.co/text-to-image/v1")

REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "60"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LEADERBOARD_POLL_SECONDS = float(os.getenv("LEADERBOARD_POLL_SECONDS", "2"))

# Game constants
PART_COUNT = 10
GRID_SIZE = 4
PIECE_COUNT = GRID_SIZE * GRID_SIZE
MAX_NEW_PIECES = 2
