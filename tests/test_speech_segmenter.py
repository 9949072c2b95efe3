import asyncio

import numpy as np
import pytest

from conftest import make_segment
from mobile.convrec.audio import gate as gate_mod
from mobile.convrec.audio import speech_segmenter as seg_mod
from mobile.convrec.errors import GateError
from mobile.convrec.services.logger import LogBuffer


class DummyVad:
    """Marks a frame as speech when its peak exceeds a fixed level."""

    def __init__(self, data: dict) -> None:
        self.data = data

    def is_speech(self, frame: bytes, sample_rate: int) -> bool:  # noqa: ARG002
        self.data["count"] += 1
        samples = np.frombuffer(frame, dtype=np.int16)
        return bool(samples.size) and int(np.max(np.abs(samples))) > 1000


class DummyWebRTC:
    def __init__(self, data: dict) -> None:
        self.data = data

    def Vad(self, level: int) -> DummyVad:  # noqa: N802
        self.data["level"] = level
        return DummyVad(self.data)


@pytest.fixture()
def registry(monkeypatch):
    data = {"count": 0, "level": None}
    monkeypatch.setattr(seg_mod, "webrtcvad", DummyWebRTC(data))
    return data


def test_segmenter_finds_speech_window(registry):
    sample_rate = 16_000
    silence = np.zeros(sample_rate // 2, dtype=np.int16)
    speech = np.full(int(sample_rate * 0.6), 5000, dtype=np.int16)
    audio = np.concatenate([silence, speech, silence])

    segmenter = seg_mod.SpeechSegmenter(vad_aggressiveness=5, min_speech_ms=100)
    windows = segmenter.windows(audio, sample_rate)

    assert registry["level"] == 3
    assert registry["count"] > 0
    assert len(windows) == 1
    # speech starts at 500 ms; frames are 30 ms wide
    assert 470 <= windows[0].start_ms <= 530
    assert windows[0].end_ms > windows[0].start_ms


def test_speech_ratio_is_fraction_of_buffer(registry):  # noqa: ARG001
    sample_rate = 16_000
    audio = np.concatenate(
        [np.full(sample_rate, 5000, dtype=np.int16), np.zeros(sample_rate, dtype=np.int16)]
    )
    segmenter = seg_mod.SpeechSegmenter(min_speech_ms=100)
    ratio = segmenter.speech_ratio(audio, sample_rate)
    assert 0.45 <= ratio <= 0.55
    assert segmenter.speech_ratio(np.array([], dtype=np.int16), sample_rate) == 0.0


def test_unsupported_rate_is_a_gate_error(registry):  # noqa: ARG001
    segmenter = seg_mod.SpeechSegmenter()
    with pytest.raises(GateError):
        segmenter.windows(np.zeros(4410, dtype=np.int16), 44_100)


def test_segmenter_requires_webrtcvad(monkeypatch):
    monkeypatch.setattr(seg_mod, "webrtcvad", None)
    with pytest.raises(GateError):
        seg_mod.SpeechSegmenter()


def test_gate_uses_speech_model_when_vad_available(registry, tmp_path):  # noqa: ARG001
    async def scenario():
        gate = gate_mod.ConversationGate(LogBuffer(), threshold=0.7, energy_threshold=1_000_000)
        task = gate.start_loading()
        if task is not None:
            await task
        return gate, await gate.detect(make_segment(tmp_path, amplitude=4000, index=0))

    gate, verdict = asyncio.run(scenario())
    assert gate.model_ready
    assert verdict is True


def test_gate_falls_back_to_energy_without_vad(monkeypatch, tmp_path):
    monkeypatch.setattr(seg_mod, "webrtcvad", None)

    async def scenario():
        gate = gate_mod.ConversationGate(LogBuffer(), energy_threshold=1000)
        task = gate.start_loading()
        if task is not None:
            await task
        return gate, await gate.detect(make_segment(tmp_path, amplitude=1500))

    gate, verdict = asyncio.run(scenario())
    assert not gate.model_ready
    assert verdict is True
