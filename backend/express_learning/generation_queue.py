"""
Lazy-load generation queue.

Chapters are generated one at a time, in ascending order, as the reader
works through a plan. Each chapter moves through::

    pending --> generating --> ready
                    |
                    +--> failed --(retry)--> pending

A chapter is ready as soon as it has a non-empty explanation, whoever
produced it. At most one chapter is generating at any moment; a failed
chapter is skipped until it is retried by hand.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Set

logger = logging.getLogger(__name__)

PENDING = "pending"
GENERATING = "generating"
READY = "ready"
FAILED = "failed"

# Returns the freshly generated chapter fields (at least "explanation")
GenerateFn = Callable[[str], Awaitable[Mapping[str, Any]]]


class ChapterQueue:
    def __init__(self, plan_id: str, chapters: Iterable[Mapping[str, Any]]) -> None:
        self.plan_id = plan_id
        self.chapters: List[Dict[str, Any]] = []
        self.generating_chapter_id: Optional[str] = None
        self.failed: Set[str] = set()
        self.processed: Set[str] = set()
        self.errors: Dict[str, str] = {}
        self.sync(chapters)

    def sync(self, chapters: Iterable[Mapping[str, Any]]) -> None:
        """Merge fresh chapter rows into local state, keeping failure flags."""
        by_id = {ch["id"]: ch for ch in self.chapters}
        for row in chapters:
            local = by_id.setdefault(row["id"], {})
            local.update(row)
        self.chapters = sorted(by_id.values(), key=lambda ch: ch["order"])

    def _find(self, chapter_id: str) -> Dict[str, Any]:
        for ch in self.chapters:
            if ch["id"] == chapter_id:
                return ch
        raise KeyError(chapter_id)

    def state_of(self, chapter_id: str) -> str:
        chapter = self._find(chapter_id)
        if chapter.get("explanation"):
            return READY
        if chapter_id == self.generating_chapter_id:
            return GENERATING
        if chapter_id in self.failed:
            return FAILED
        return PENDING

    def next_pending(self) -> Optional[Dict[str, Any]]:
        for ch in self.chapters:
            cid = ch["id"]
            if ch.get("explanation") or cid in self.processed or cid in self.failed:
                continue
            return ch
        return None

    @property
    def done(self) -> bool:
        return all(ch.get("explanation") for ch in self.chapters)

    async def step(self, generate: GenerateFn) -> Optional[str]:
        """Generate the next pending chapter.

        Returns the id of the chapter that was attempted, or ``None`` when a
        chapter is already in flight or nothing is pending.
        """
        if self.generating_chapter_id is not None:
            return None
        chapter = self.next_pending()
        if chapter is None:
            return None
        chapter_id = chapter["id"]
        self.generating_chapter_id = chapter_id
        self.processed.add(chapter_id)
        try:
            fields = await generate(chapter_id)
        except Exception as exc:
            logger.warning("Chapter %s of plan %s failed: %s", chapter_id, self.plan_id, exc)
            self.failed.add(chapter_id)
            self.errors[chapter_id] = str(exc) or exc.__class__.__name__
        else:
            chapter.update(fields or {})
            self.errors.pop(chapter_id, None)
        finally:
            self.generating_chapter_id = None
        return chapter_id

    def retry(self, chapter_id: str) -> None:
        self._find(chapter_id)
        self.failed.discard(chapter_id)
        self.processed.discard(chapter_id)
        self.errors.pop(chapter_id, None)

    async def run(self, generate: GenerateFn) -> None:
        while self.generating_chapter_id is None and self.next_pending() is not None:
            await self.step(generate)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "generating_chapter_id": self.generating_chapter_id,
            "done": self.done,
            "chapters": [
                {
                    "id": ch["id"],
                    "order": ch["order"],
                    "title": ch.get("title", ""),
                    "state": self.state_of(ch["id"]),
                    "error": self.errors.get(ch["id"]),
                }
                for ch in self.chapters
            ],
        }
