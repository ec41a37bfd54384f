from sqlalchemy import Column, String, TIMESTAMP
from sqlalchemy.sql import func
from ..database import Base


class User(Base):
    """Local mirror of an identity issued by the auth provider"""
    __tablename__ = "users"

    user_id = Column(String, primary_key=True, index=True)
    email = Column(String, nullable=True, index=True)
    name = Column(String, nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
