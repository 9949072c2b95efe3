import asyncio
from pathlib import Path

from conftest import FakeClient, StaticGate, make_segment
from mobile.convrec.audio.gate import ConversationGate
from mobile.convrec.audio.types import SegmentState
from mobile.convrec.services.logger import LogBuffer
from mobile.convrec.services.uploader import UploadPipeline
from mobile.convrec.store.segment_store import SegmentStore


def make_pipeline(tmp_path, gate, client):
    store = SegmentStore(tmp_path / "segments.json")
    return UploadPipeline(gate, client, store, LogBuffer()), store


def test_loud_segment_is_uploaded_once_and_released(tmp_path, fake_client):
    gate = ConversationGate(LogBuffer(), model_loader=None, energy_threshold=1000)
    pipeline, store = make_pipeline(tmp_path, gate, fake_client)
    segment = make_segment(tmp_path, amplitude=1500)

    async def scenario():
        await pipeline.submit(segment)

    asyncio.run(scenario())
    assert fake_client.calls == [segment.file_path]
    assert segment.state is SegmentState.UPLOADED
    assert segment.recording_id == "rec-1"
    assert segment.transcription_job_id == "job-rec-1"
    assert not Path(segment.file_path).exists()
    record = store.get(segment.id)
    assert record["state"] == "uploaded"
    assert record["recording_id"] == "rec-1"


def test_negative_verdict_deletes_without_upload(tmp_path, fake_client):
    pipeline, store = make_pipeline(tmp_path, StaticGate(False), fake_client)
    segment = make_segment(tmp_path)

    state = asyncio.run(pipeline.process(segment))
    assert state is SegmentState.DISCARDED
    assert fake_client.calls == []
    assert not Path(segment.file_path).exists()
    assert store.get(segment.id) is None


def test_failed_upload_keeps_file_and_schedules_one_retry(tmp_path):
    client = FakeClient(failures=1)
    pipeline, store = make_pipeline(tmp_path, StaticGate(True), client)
    segment = make_segment(tmp_path)

    state = asyncio.run(pipeline.process(segment))
    assert state is SegmentState.FAILED
    assert Path(segment.file_path).exists()
    retries = store.pending_retries()
    assert [item.id for item in retries] == [segment.id]
    assert "503" in store.get(segment.id)["last_error"]


def test_retry_failure_is_final(tmp_path):
    first_client = FakeClient(failures=1)
    pipeline, _ = make_pipeline(tmp_path, StaticGate(True), first_client)
    segment = make_segment(tmp_path)
    asyncio.run(pipeline.process(segment))

    # next launch: fresh objects over the same persisted store
    relaunch_client = FakeClient(failures=5)
    gate = StaticGate(True)
    relaunched, store = make_pipeline(tmp_path, gate, relaunch_client)
    results = asyncio.run(relaunched.retry_failed())
    assert results == [SegmentState.FAILED]
    assert relaunch_client.calls == [segment.file_path]
    assert gate.seen == []  # retries skip the gate
    assert Path(segment.file_path).exists()
    assert store.pending_retries() == []
    assert store.get(segment.id)["attempts"] == 2

    # a further launch does not try again
    assert asyncio.run(relaunched.retry_failed()) == []
    assert len(relaunch_client.calls) == 1


def test_retry_success_uploads_and_releases(tmp_path):
    pipeline, _ = make_pipeline(tmp_path, StaticGate(True), FakeClient(failures=1))
    segment = make_segment(tmp_path)
    asyncio.run(pipeline.process(segment))

    client = FakeClient()
    relaunched, store = make_pipeline(tmp_path, StaticGate(True), client)
    assert asyncio.run(relaunched.retry_failed()) == [SegmentState.UPLOADED]
    assert not Path(segment.file_path).exists()
    assert store.get(segment.id)["state"] == "uploaded"


def test_retry_with_missing_file_is_not_attempted(tmp_path):
    pipeline, _ = make_pipeline(tmp_path, StaticGate(True), FakeClient(failures=1))
    segment = make_segment(tmp_path)
    asyncio.run(pipeline.process(segment))
    Path(segment.file_path).unlink()

    client = FakeClient()
    relaunched, store = make_pipeline(tmp_path, StaticGate(True), client)
    assert asyncio.run(relaunched.retry_failed()) == [SegmentState.FAILED]
    assert client.calls == []
    assert store.pending_retries() == []


class BlockingGate:
    """Holds segment 0 at the gate until released."""

    def __init__(self) -> None:
        self.release = asyncio.Event()

    async def detect(self, segment):
        if segment.index == 0:
            await self.release.wait()
        return True


def test_segments_do_not_block_each_other(tmp_path, fake_client):
    first = make_segment(tmp_path, index=0)
    second = make_segment(tmp_path, index=1)

    async def scenario():
        gate = BlockingGate()
        pipeline, _ = make_pipeline(tmp_path, gate, fake_client)
        slow = pipeline.submit(first)
        fast = pipeline.submit(second)
        await fast
        snapshot = (first.state, second.state, pipeline.in_flight)
        gate.release.set()
        await pipeline.drain()
        assert slow.done()
        return snapshot

    first_state, second_state, in_flight = asyncio.run(scenario())
    assert first_state is SegmentState.PENDING_DECISION
    assert second_state is SegmentState.UPLOADED
    assert in_flight == 1
    assert first.state is SegmentState.UPLOADED
    assert fake_client.calls == [second.file_path, first.file_path]


def test_delete_failure_marks_segment_failed(tmp_path, fake_client, monkeypatch):
    pipeline, store = make_pipeline(tmp_path, StaticGate(False), fake_client)
    segment = make_segment(tmp_path)

    def refuse(self, missing_ok=False):  # noqa: ARG001
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr(Path, "unlink", refuse)
    state = asyncio.run(pipeline.process(segment))
    monkeypatch.undo()

    assert state is SegmentState.FAILED
    assert fake_client.calls == []
    record = store.get(segment.id)
    assert record["state"] == "failed"
    assert record["retry_pending"] is False


def test_recover_resubmits_interrupted_segments(tmp_path, fake_client):
    store = SegmentStore(tmp_path / "segments.json")
    segment = make_segment(tmp_path)
    segment.state = SegmentState.UPLOADING
    store.add(segment)
    orphan = make_segment(tmp_path, index=1)
    orphan.state = SegmentState.PENDING_DECISION
    store.add(orphan)
    Path(orphan.file_path).unlink()

    async def scenario():
        pipeline = UploadPipeline(StaticGate(True), fake_client, SegmentStore(tmp_path / "segments.json"), LogBuffer())
        tasks = pipeline.recover()
        await pipeline.drain()
        return pipeline, tasks

    pipeline, tasks = asyncio.run(scenario())
    assert len(tasks) == 1
    assert fake_client.calls == [segment.file_path]
    assert pipeline.store.get(segment.id)["state"] == "uploaded"
    assert pipeline.store.get(orphan.id) is None
