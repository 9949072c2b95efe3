import asyncio

import numpy as np

from conftest import make_segment
from mobile.convrec.audio.gate import ConversationGate, EnergyGate, ModelGate
from mobile.convrec.errors import GateError
from mobile.convrec.services.logger import LogBuffer


class FixedModel:
    def __init__(self, score: float) -> None:
        self.value = score

    def score(self, pcm, sample_rate):  # noqa: ARG002
        return self.value


class BrokenModel:
    def score(self, pcm, sample_rate):  # noqa: ARG002
        raise RuntimeError("tensor shape mismatch")


async def _loaded(gate: ConversationGate) -> None:
    task = gate.start_loading()
    if task is not None:
        await task


def test_energy_gate_keeps_loud_segment(tmp_path):
    gate = ConversationGate(LogBuffer(), model_loader=None, energy_threshold=1000)
    segment = make_segment(tmp_path, amplitude=1500)
    assert asyncio.run(gate.detect(segment)) is True


def test_energy_gate_discards_quiet_segment(tmp_path):
    gate = ConversationGate(LogBuffer(), model_loader=None, energy_threshold=1000)
    segment = make_segment(tmp_path, amplitude=200)
    assert asyncio.run(gate.detect(segment)) is False


def test_energy_is_rms_in_sample_units():
    pcm = np.array([1000, -1000, 1000, -1000], dtype=np.int16)
    assert EnergyGate.energy(pcm) == 1000.0
    assert EnergyGate.energy(np.array([], dtype=np.int16)) == 0.0


def test_model_gate_threshold_is_strict():
    pcm = np.zeros(160, dtype=np.int16)
    assert ModelGate(FixedModel(0.71), 0.7).evaluate(pcm, 16000) is True
    assert ModelGate(FixedModel(0.7), 0.7).evaluate(pcm, 16000) is False


def test_model_failure_yields_conversation(tmp_path):
    async def scenario():
        gate = ConversationGate(LogBuffer(), model_loader=BrokenModel, energy_threshold=1000)
        await _loaded(gate)
        assert gate.model_ready
        return await gate.detect(make_segment(tmp_path, amplitude=0))

    assert asyncio.run(scenario()) is True


def test_model_gate_wraps_inference_errors():
    pcm = np.zeros(160, dtype=np.int16)
    try:
        ModelGate(BrokenModel()).evaluate(pcm, 16000)
    except GateError as exc:
        assert "tensor" in str(exc)
    else:
        raise AssertionError("Expected GateError")


def test_unreadable_file_yields_conversation(tmp_path):
    gate = ConversationGate(LogBuffer(), model_loader=None)
    segment = make_segment(tmp_path, amplitude=0)
    with open(segment.file_path, "wb") as fh:
        fh.write(b"not audio")
    assert asyncio.run(gate.detect(segment)) is True


def test_missing_file_yields_conversation(tmp_path):
    gate = ConversationGate(LogBuffer(), model_loader=None)
    segment = make_segment(tmp_path, amplitude=0)
    segment.file_path = str(tmp_path / "gone.wav")
    assert asyncio.run(gate.detect(segment)) is True


def test_gate_retries_model_load_after_failure(tmp_path):
    attempts = {"count": 0}

    def loader():
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise GateError("model file not bundled yet")
        return FixedModel(0.9)

    async def scenario():
        gate = ConversationGate(LogBuffer(), model_loader=loader, threshold=0.7, energy_threshold=1000)
        await _loaded(gate)
        assert not gate.model_ready
        quiet = make_segment(tmp_path, amplitude=100, index=0)
        first = await gate.detect(quiet)
        await _loaded(gate)
        second = await gate.detect(make_segment(tmp_path, amplitude=100, index=1))
        return gate, first, second

    gate, first, second = asyncio.run(scenario())
    assert first is False  # energy fallback while the model is unavailable
    assert second is True  # model picked up once loading succeeded
    assert gate.model_ready
    assert gate.load_attempts == 2


def test_disabled_gate_keeps_everything(tmp_path):
    gate = ConversationGate(LogBuffer(), model_loader=None, enabled=False)
    segment = make_segment(tmp_path, amplitude=0)
    assert asyncio.run(gate.detect(segment)) is True


def test_threshold_updates_apply_to_loaded_model(tmp_path):
    async def scenario():
        gate = ConversationGate(LogBuffer(), model_loader=lambda: FixedModel(0.8))
        await _loaded(gate)
        gate.set_thresholds(threshold=0.9)
        return await gate.detect(make_segment(tmp_path, amplitude=5000))

    assert asyncio.run(scenario()) is False
