"""
tutor_backend/orm/tutor_persona.py
Tutor persona catalogue
"""
from sqlalchemy import Column, String, Text, JSON
from tutor_backend.orm.base import Base


class TutorPersonaRecord(Base):
    """
    Selectable tutor voice.

    Examples:
    - encouraging_coach
    - patient_guide
    """
    __tablename__ = "tutor_personas"

    id = Column(String(64), primary_key=True)
    name = Column(String(120), nullable=False)
    tone = Column(String(120), nullable=True)
    constraints = Column(Text, nullable=True)
    prompt_snippet = Column(Text, nullable=True)
    sample_replies = Column(JSON, nullable=True)
