from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text
from .db import Base


class AuthUser(Base):
	__tablename__ = "auth_users"
	id = Column(Integer, primary_key=True, autoincrement=True)
	username = Column(String(128), unique=True, index=True, nullable=False)
	password_hash = Column(String(256), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class UserStat(Base):
	__tablename__ = "user_stats"
	id = Column(Integer, primary_key=True, autoincrement=True)
	# One progress row per user
	user_id = Column(Integer, unique=True, index=True, nullable=False)
	total_questions = Column(Integer, default=0, nullable=False)
	total_correct = Column(Integer, default=0, nullable=False)
	wrong_answers = Column(Text, default="[]", nullable=True)  # JSON list of missed record ids
	regional_stats = Column(Text, default="{}", nullable=True)  # JSON {category: {total, correct}}
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
