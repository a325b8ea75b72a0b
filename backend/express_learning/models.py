from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, Boolean, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .db import Base


PLAN_STATUSES = ("generating", "structure_ready", "generated")
VISUAL_TYPES = ("text", "image", "mermaid", "react")


def _new_id() -> str:
	return uuid.uuid4().hex


class AuthUser(Base):
	__tablename__ = "auth_users"
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# Session id is the JWT "jti" claim
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), index=True, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class LearningPlan(Base):
	__tablename__ = "learning_plans"
	id = Column(String(32), primary_key=True, default=_new_id)
	# Null for guest plans
	user_id = Column(String(128), index=True, nullable=True)
	topic = Column(Text, nullable=False)
	urgency = Column(String(32), default="2h", nullable=False)
	level = Column(String(32), default="beginner", nullable=False)
	language = Column(String(64), default="english", nullable=False)
	mode = Column(String(32), default="standard", nullable=False)
	status = Column(String(32), default="generating", nullable=False)  # generating|structure_ready|generated
	intent = Column(String(32), nullable=True)  # learning|solving|preparing
	curriculum_strategy = Column(Text, nullable=True)
	document_context = Column(Text, nullable=True)  # base64 PDF
	next_steps = Column(JSON, default=list, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	chapters = relationship("Chapter", back_populates="plan", order_by="Chapter.order")


class Chapter(Base):
	__tablename__ = "chapters"
	__table_args__ = (UniqueConstraint("plan_id", "order", name="uq_chapters_plan_order"),)
	id = Column(String(32), primary_key=True, default=_new_id)
	plan_id = Column(String(32), ForeignKey("learning_plans.id"), index=True, nullable=False)
	order = Column(Integer, nullable=False)
	title = Column(Text, nullable=False)
	mental_model = Column(Text, default="", nullable=False)
	key_takeaway = Column(Text, default="", nullable=False)
	# Empty until the detail step runs; non-empty explanation means "ready"
	explanation = Column(Text, default="", nullable=False)
	common_misconception = Column(Text, default="", nullable=False)
	real_world_example = Column(Text, default="", nullable=False)
	quiz_question = Column(Text, default="", nullable=False)
	quiz_answer = Column(Text, default="", nullable=False)
	visual_type = Column(String(16), default="text", nullable=False)
	visual_content = Column(Text, default="", nullable=False)
	is_completed = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	plan = relationship("LearningPlan", back_populates="chapters")
