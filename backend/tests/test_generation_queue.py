import asyncio

import pytest

from express_learning.generation_queue import FAILED, GENERATING, PENDING, READY, ChapterQueue


def _rows(*explanations):
    return [
        {"id": f"c{i}", "order": i, "title": f"Chapter {i}", "explanation": text}
        for i, text in enumerate(explanations, start=1)
    ]


class Recorder:
    """generate() stand-in that records the order of calls."""

    def __init__(self, fail=()):
        self.seen = []
        self.fail = set(fail)

    async def __call__(self, chapter_id):
        self.seen.append(chapter_id)
        if chapter_id in self.fail:
            raise RuntimeError(f"boom {chapter_id}")
        return {"explanation": f"Body of {chapter_id}"}


def test_initial_states():
    queue = ChapterQueue("p1", _rows("done already", "", ""))
    assert queue.state_of("c1") == READY
    assert queue.state_of("c2") == PENDING
    assert queue.next_pending()["id"] == "c2"
    assert queue.done is False


def test_chapters_sorted_by_order():
    rows = _rows("", "", "")
    queue = ChapterQueue("p1", list(reversed(rows)))
    assert [c["id"] for c in queue.chapters] == ["c1", "c2", "c3"]


@pytest.mark.asyncio
async def test_run_generates_in_ascending_order():
    queue = ChapterQueue("p1", list(reversed(_rows("", "", ""))))
    generate = Recorder()

    await queue.run(generate)

    assert generate.seen == ["c1", "c2", "c3"]
    assert queue.done is True
    assert all(c["state"] == READY for c in queue.snapshot()["chapters"])


@pytest.mark.asyncio
async def test_ready_chapters_are_never_regenerated():
    queue = ChapterQueue("p1", _rows("", "already here", ""))
    generate = Recorder()
    await queue.run(generate)
    assert generate.seen == ["c1", "c3"]


@pytest.mark.asyncio
async def test_at_most_one_generating():
    queue = ChapterQueue("p1", _rows("", ""))
    release = asyncio.Event()
    active = []
    peak = []

    async def slow_generate(chapter_id):
        active.append(chapter_id)
        peak.append(len(active))
        await release.wait()
        active.remove(chapter_id)
        return {"explanation": "Body"}

    first = asyncio.create_task(queue.step(slow_generate))
    await asyncio.sleep(0)
    assert queue.generating_chapter_id == "c1"
    assert queue.state_of("c1") == GENERATING

    # A second trigger while c1 is in flight does nothing
    assert await queue.step(slow_generate) is None

    release.set()
    assert await first == "c1"
    assert queue.generating_chapter_id is None
    assert max(peak) == 1


@pytest.mark.asyncio
async def test_failed_chapter_is_skipped_until_retry():
    queue = ChapterQueue("p1", _rows("", ""))
    generate = Recorder(fail={"c1"})

    await queue.run(generate)

    assert generate.seen == ["c1", "c2"]
    assert queue.state_of("c1") == FAILED
    assert queue.state_of("c2") == READY
    assert queue.snapshot()["chapters"][0]["error"] == "boom c1"
    assert queue.next_pending() is None

    queue.retry("c1")
    assert queue.state_of("c1") == PENDING
    generate.fail.clear()
    assert await queue.step(generate) == "c1"
    assert queue.state_of("c1") == READY
    assert queue.done is True


def test_retry_unknown_chapter():
    queue = ChapterQueue("p1", _rows(""))
    with pytest.raises(KeyError):
        queue.retry("nope")


@pytest.mark.asyncio
async def test_step_with_nothing_pending():
    queue = ChapterQueue("p1", _rows("a", "b"))
    assert await queue.step(Recorder()) is None
    assert queue.done is True


@pytest.mark.asyncio
async def test_sync_keeps_failures_and_picks_up_external_content():
    queue = ChapterQueue("p1", _rows("", ""))
    await queue.step(Recorder(fail={"c1"}))

    # Chapter 2 was generated elsewhere (e.g. direct /chapters/{id}/generate)
    queue.sync(_rows("", "written elsewhere"))

    assert queue.state_of("c1") == FAILED
    assert queue.state_of("c2") == READY
    assert queue.next_pending() is None


def test_snapshot_shape():
    snap = ChapterQueue("p1", _rows("", "")).snapshot()
    assert snap == {
        "plan_id": "p1",
        "generating_chapter_id": None,
        "done": False,
        "chapters": [
            {"id": "c1", "order": 1, "title": "Chapter 1", "state": PENDING, "error": None},
            {"id": "c2", "order": 2, "title": "Chapter 2", "state": PENDING, "error": None},
        ],
    }
