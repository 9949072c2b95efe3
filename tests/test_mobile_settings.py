from mobile.convrec.store.settings_store import SettingsStore


def test_settings_store_roundtrip(tmp_path):
    path = tmp_path / "settings.json"
    store = SettingsStore(path)
    assert store.get().server_url == ""
    assert store.get().segment_length_ms == 30_000
    assert store.get().energy_threshold == 1000.0
    assert store.get().model_threshold == 0.7
    assert store.get().gating_enabled is True

    store.update(server_url="https://example.com", segment_length_ms=15000, gating_enabled="false", platform="Android")
    data = path.read_text()
    assert "example.com" in data
    assert "15000" in data

    store2 = SettingsStore(path)
    assert store2.get().server_url == "https://example.com"
    assert store2.get().segment_length_ms == 15000
    assert store2.get().gating_enabled is False
    assert store2.get().platform == "Android"


def test_settings_store_ignores_unknown_keys(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")
    store.update(api_key="secret", energy_threshold="1200")
    assert not hasattr(store.get(), "api_key")
    assert store.get().energy_threshold == 1200.0
