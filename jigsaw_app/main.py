import json
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Callable, Optional

from fastapi import FastAPI, Request, Depends, Form, HTTPException
from fastapi.responses import Response, StreamingResponse
from starlette.middleware.sessions import SessionMiddleware
from sqlalchemy.orm import Session, sessionmaker

from .config import SECRET_KEY, LOG_LEVEL, LEADERBOARD_POLL_SECONDS, PIECE_COUNT
from .db import SessionLocal, init_db, get_db
from .errors import (
    AlreadyCompleteFailure,
    AuthFailure,
    GenerationFailure,
    JigsawError,
    NotFoundFailure,
    StoreFailure,
    UsernameTakenFailure,
)
from . import auth
from .openai_client import generate_month_prompt, image_generator
from .schemas import AwardOut, LeaderboardEntryOut, PuzzleOut, UserOut
from .services.leaderboard import leaderboard, watch_leaderboard
from .services.monthly_image import MonthlyImageCache, ResolvedImage, current_month_key
from .services.pieces import PieceAwardLedger
from .services.puzzle import crop_piece, render_progress

logger = logging.getLogger(__name__)

PAYMENT_OPTIONS = [
    "Pay Gas Bill",
    "Electricity Bill",
    "Credit Card Payment",
    "UPI Recharge",
]


def to_http(e: JigsawError, unavailable: str = "Temporarily unavailable") -> HTTPException:
    if isinstance(e, NotFoundFailure):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, AuthFailure):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, (GenerationFailure, StoreFailure)):
        logger.warning("%s: %s", unavailable, e)
        return HTTPException(status_code=503, detail=f"{unavailable}: {e}")
    return HTTPException(status_code=500, detail=str(e))


def create_app(
    session_factory: sessionmaker = SessionLocal,
    prompt_fn: Optional[Callable[[str], str]] = None,
    image_fn: Optional[Callable[[str], bytes]] = None,
    rng: Optional[random.Random] = None,
    poll_seconds: float = LEADERBOARD_POLL_SECONDS,
) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(
            level=LOG_LEVEL,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        init_db(bind=session_factory.kw["bind"])
        app.state.session_factory = session_factory
        app.state.image_cache = MonthlyImageCache(
            session_factory,
            prompt_fn or generate_month_prompt,
            image_fn or image_generator(),
        )
        app.state.ledger = PieceAwardLedger(session_factory, rng=rng)
        yield

    app = FastAPI(title="Monthly Jigsaw", lifespan=lifespan)
    app.add_middleware(SessionMiddleware, secret_key=SECRET_KEY, same_site="lax", https_only=False)

    def require_user(request: Request, db: Session = Depends(get_db)):
        username = request.session.get("username")
        if not username:
            raise HTTPException(status_code=401, detail="Not logged in")
        user = auth.get_user(db, username)
        if user is None:
            request.session.clear()
            raise HTTPException(status_code=401, detail="Not logged in")
        return user

    def resolve_current(request: Request) -> ResolvedImage:
        try:
            return request.app.state.image_cache.resolve(current_month_key())
        except JigsawError as e:
            raise to_http(e, "Image temporarily unavailable") from e

    @app.post("/signup", response_model=UserOut, status_code=201)
    def signup(
        request: Request,
        username: str = Form(...),
        full_name: str = Form(""),
        password: str = Form(...),
        db: Session = Depends(get_db),
    ):
        try:
            user = auth.signup(db, username, full_name, password)
        except UsernameTakenFailure as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except AuthFailure as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except JigsawError as e:
            raise to_http(e) from e

        request.session["username"] = user.username
        return UserOut.model_validate(user)

    @app.post("/login", response_model=UserOut)
    def login(
        request: Request,
        username: str = Form(...),
        password: str = Form(...),
        db: Session = Depends(get_db),
    ):
        try:
            user = auth.login(db, username, password)
        except JigsawError as e:
            raise to_http(e) from e

        request.session["username"] = user.username
        return UserOut.model_validate(user)

    @app.post("/logout", status_code=204)
    def logout(request: Request):
        request.session.clear()
        return Response(status_code=204)

    @app.get("/me", response_model=UserOut)
    def me(user=Depends(require_user)):
        return UserOut.model_validate(user)

    @app.get("/puzzle", response_model=PuzzleOut)
    def puzzle(request: Request, user=Depends(require_user)):
        resolved = resolve_current(request)
        return PuzzleOut(
            month=resolved.month,
            prompt=resolved.prompt,
            pieces=user.pieces,
            complete=len(user.pieces) >= PIECE_COUNT,
        )

    @app.get("/puzzle/image")
    def puzzle_image(request: Request, user=Depends(require_user)):
        resolved = resolve_current(request)
        return Response(content=render_progress(resolved.image_bytes, user.pieces), media_type="image/png")

    @app.get("/puzzle/pieces/{index}")
    def puzzle_piece(index: int, request: Request, user=Depends(require_user)):
        if not 0 <= index < PIECE_COUNT:
            raise HTTPException(status_code=404, detail="Not found")
        if index not in user.pieces:
            raise HTTPException(status_code=403, detail="Piece not collected yet")

        resolved = resolve_current(request)
        return Response(content=crop_piece(resolved.image_bytes, index), media_type="image/png")

    @app.get("/payments")
    def payments():
        return {"options": PAYMENT_OPTIONS}

    @app.post("/payments", response_model=AwardOut)
    def pay(request: Request, label: str = Form(...), user=Depends(require_user)):
        if label not in PAYMENT_OPTIONS:
            raise HTTPException(status_code=400, detail="Unknown payment option")

        try:
            result = request.app.state.ledger.award_random_pieces(user.username)
        except AlreadyCompleteFailure as e:
            return AwardOut(message=str(e), awarded=[], pieces=list(user.pieces), complete=True)
        except JigsawError as e:
            raise to_http(e) from e

        if result.complete:
            message = "Congrats! You completed the puzzle!"
        else:
            message = f"You unlocked {len(result.new_pieces)} new pieces!"
        return AwardOut(
            message=message,
            awarded=result.new_pieces,
            pieces=result.pieces,
            complete=result.complete,
        )

    @app.get("/leaderboard", response_model=list[LeaderboardEntryOut])
    def get_leaderboard(db: Session = Depends(get_db)):
        try:
            return [LeaderboardEntryOut.model_validate(e) for e in leaderboard(db)]
        except JigsawError as e:
            raise to_http(e) from e

    @app.get("/leaderboard/stream")
    async def leaderboard_stream(request: Request):
        async def events():
            async for ranking in watch_leaderboard(request.app.state.session_factory, poll_seconds):
                if await request.is_disconnected():
                    break
                yield f"data: {json.dumps([asdict(e) for e in ranking])}\n\n"

        return StreamingResponse(events(), media_type="text/event-stream")

    return app


app = create_app()
