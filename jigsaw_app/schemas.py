from pydantic import BaseModel, Field


class UserOut(BaseModel):
    username: str
    full_name: str
    pieces: list[int] = Field(default_factory=list)

    class Config:
        from_attributes = True


class PuzzleOut(BaseModel):
    month: str
    prompt: str
    pieces: list[int]
    complete: bool


class AwardOut(BaseModel):
    message: str
    awarded: list[int]
    pieces: list[int]
    complete: bool


class LeaderboardEntryOut(BaseModel):
    username: str
    full_name: str
    piece_count: int

    class Config:
        from_attributes = True
