"""
tutor_backend/orm/curriculum.py
Curriculum reference tables: subjects, skills, modules, lessons

Read-only from the tutor's point of view; content import owns writes.
"""
from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from tutor_backend.orm.base import Base


class Subject(Base):
    """Top-level subject (Math, English, Science, Social Studies)"""
    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False, unique=True)

    skills = relationship("Skill", back_populates="subject")


class Skill(Base):
    """
    Fine-grained skill that mastery is tracked against.
    Mastery by subject is rolled up through skill.subject_id.
    """
    __tablename__ = "skills"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=True, index=True)
    name = Column(String(200), nullable=False)

    subject = relationship("Subject", back_populates="skills")


class Module(Base):
    __tablename__ = "modules"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    subject = Column(String(120), nullable=True, comment="Subject display name")

    lessons = relationship("Lesson", back_populates="module")


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    module_id = Column(Integer, ForeignKey("modules.id"), nullable=True, index=True)

    module = relationship("Module", back_populates="lessons")
