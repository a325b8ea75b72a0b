"""Shared fixtures: in-memory database, fake LLM client and API test client."""
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("OPENAI_API_KEY", "test-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from express_learning import models  # noqa: F401  registers tables on Base
from express_learning.ai_client import get_ai_client
from express_learning.db import Base, get_db
from express_learning.main import app
from express_learning.models import Chapter, LearningPlan
from express_learning.routers import plans as plans_router


LONG_EXPLANATION = (
    "Fuel and air are squeezed by the piston until a spark ignites the mixture. "
    "The expanding gas pushes the piston down, turning the crankshaft."
)

OUTLINE_REPLY = {
    "intent": "learning",
    "curriculum_strategy": "Start with the cycle, then the parts. Finish with efficiency.",
    "chapters": [
        {"title": "How Engines Ignite", "mental_model": "A controlled explosion in a can", "key_takeaway": "Spark timing matters."},
        {"title": "The Four Strokes", "mental_model": "Breathing in and out", "key_takeaway": "Intake, compression, power, exhaust."},
        {"title": "Why Efficiency Is Capped", "mental_model": "A leaky bucket", "key_takeaway": "Heat escapes."},
    ],
    "next_steps": ["Turbochargers", "Diesel cycles", "Electric motors"],
}

DETAIL_REPLY = {
    "explanation": LONG_EXPLANATION,
    "common_misconception": "Engines burn fuel continuously.",
    "real_world_example": "A lawnmower engine.",
    "quiz_question": "What pushes the piston down?",
    "quiz_answer": "Expanding gas.",
    "visual_type": "mermaid",
    "visual_content": "flowchart TD\nA[Intake] --> B[Compression]",
}


class FakeAIClient:
    """Stands in for AIClient: returns queued replies and records every call."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []
        self.images = []

    def queue(self, *replies):
        self.replies.extend(replies)

    async def complete(self, messages, *, json_mode=True):
        self.calls.append({"messages": messages, "json_mode": json_mode})
        if not self.replies:
            raise AssertionError("unexpected LLM call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply if isinstance(reply, str) else json.dumps(reply)

    async def generate_image(self, prompt):
        self.images.append(prompt)
        return "data:image/png;base64,AAAA"

    async def aclose(self):
        pass


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def fake_llm():
    return FakeAIClient()


@pytest.fixture
def client(db_session, fake_llm):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_ai_client] = lambda: fake_llm
    plans_router._queues.clear()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        plans_router._queues.clear()


@pytest.fixture
def make_plan(db_session):
    """Insert a plan, optionally with outline chapters (list of dicts)."""

    def _make(chapters=None, **fields):
        values = {"topic": "Combustion engines", "status": "generating", "next_steps": []}
        values.update(fields)
        plan = LearningPlan(**values)
        db_session.add(plan)
        db_session.flush()
        for index, ch in enumerate(chapters or [], start=1):
            row = {"title": f"Chapter {index}", "order": index}
            row.update(ch)
            db_session.add(Chapter(plan_id=plan.id, **row))
        if chapters:
            plan.status = fields.get("status", "structure_ready")
        db_session.commit()
        return plan

    return _make
