import datetime as dt
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON
from .db import Base


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String(64), unique=True, index=True, nullable=False)  # always lowercase
    full_name = Column(String(128), default="", nullable=False)
    password_hash = Column(String(255), nullable=False)
    pieces = Column(JSON, default=list, nullable=False)  # sorted grid indices 0..15
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=dt.datetime.utcnow, nullable=False)

    # UPDATE ... WHERE version = :old, so a concurrent award raises StaleDataError
    __mapper_args__ = {"version_id_col": version}


class JigsawImagePart(Base):
    __tablename__ = "jigsaw_images"
    doc_id = Column(String(64), primary_key=True)  # "{month}_part{part_id}"
    part_id = Column(Integer, nullable=False)  # 1..PART_COUNT
    base64_part = Column(Text, nullable=False)
    prompt = Column(Text, nullable=False)
    month = Column(String(7), index=True, nullable=False)  # YYYY-MM
    created_at = Column(DateTime, default=dt.datetime.utcnow, nullable=False)

    @staticmethod
    def doc_id_for(month: str, part_id: int) -> str:
        return f"{month}_part{part_id}"
