"""
tutor_backend/orm/base.py
Declarative base for the learner tables
"""
from datetime import datetime
from sqlalchemy import Column, Integer, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class TrackedRecord(Base):
    """
    Rows written as a learner works through a path.

    Adaptive reads pick the newest active path by updated_at and the
    latest attempts by created_at.
    """
    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
