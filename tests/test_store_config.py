"""Tests for save slots, autosave and settings."""

import json

import pytest

from yishi.config import (
    DEFAULT_CONFIG,
    OFFLINE_FLAG,
    apply_world_flags,
    clamp_text_speed,
    get_config_path,
    load_config,
    save_config,
    set_offline_mode,
    set_text_speed,
)
from yishi.state.event_bus import EventType
from yishi.state.store import (
    LAST_SAVED_FLAG,
    JsonSaveStore,
    MemorySaveStore,
    SaveManager,
    SaveStore,
    install_autosave,
)


class TestSaveManager:
    """Test save/load through the stores."""

    def test_memory_roundtrip(self, world):
        manager = SaveManager(world, MemorySaveStore())
        world.set_flag("met_wang", True)
        world.grant_item("ledger")
        manager.save(0)

        world.set_flag("met_wang", False)
        assert manager.load(0) is True
        assert world.get_flag("met_wang") is True
        assert world.has_item("ledger")

    def test_empty_slot(self, world):
        manager = SaveManager(world, MemorySaveStore())
        assert manager.load(3) is False
        info = manager.slot_info(3)
        assert info.exists is False
        assert info.name == "Slot 4"

    def test_stores_satisfy_protocol(self, tmp_path):
        assert isinstance(MemorySaveStore(), SaveStore)
        assert isinstance(JsonSaveStore(tmp_path), SaveStore)

    def test_json_store_backup(self, world, tmp_path):
        store = JsonSaveStore(tmp_path)
        manager = SaveManager(world, store)
        manager.save(1)
        world.set_flag("second", True)
        manager.save(1)

        assert (tmp_path / "yishi-slot-1.json").exists()
        assert (tmp_path / "yishi-slot-1.json.bak").exists()
        saved = json.loads((tmp_path / "yishi-slot-1.json").read_text(encoding="utf-8"))
        assert saved["world"]["flags"]["second"] is True

    def test_json_save_uses_camel_case_layout(self, world, tmp_path):
        world.data.resolved_spirits.append("sp_wang")
        world.add_summary("Finished st_shop.")
        manager = SaveManager(world, JsonSaveStore(tmp_path))
        manager.save(0)

        saved = json.loads((tmp_path / "yishi-slot-0.json").read_text(encoding="utf-8"))["world"]
        assert saved["resolvedSpirits"] == ["sp_wang"]
        assert saved["dialogueSummary"] == ["Finished st_shop."]
        assert "resolved_spirits" not in saved

        world.data.resolved_spirits.clear()
        assert manager.load(0)
        assert world.data.resolved_spirits == ["sp_wang"]

    def test_snake_case_save_still_loads(self, world, tmp_path):
        payload = {"world": {"resolved_spirits": ["sp_lin"], "dialogue_summary": ["old"], "flags": {}}}
        (tmp_path / "yishi-slot-2.json").write_text(json.dumps(payload), encoding="utf-8")
        manager = SaveManager(world, JsonSaveStore(tmp_path))
        assert manager.load(2)
        assert world.data.resolved_spirits == ["sp_lin"]
        assert world.data.dialogue_summary == ["old"]

    def test_json_store_corrupt_file(self, tmp_path):
        store = JsonSaveStore(tmp_path)
        (tmp_path / "yishi-slot-0.json").write_text("{not json", encoding="utf-8")
        assert store.read(0) is None

    def test_save_emits(self, world, bus):
        seen = []
        bus.on(EventType.WORLD_SAVED, lambda e: seen.append(e.data["slot"]))
        SaveManager(world, MemorySaveStore()).save(2)
        assert seen == [2]


class TestAutosave:
    """Test the autosave subscriber."""

    def test_autosave_writes_timestamp(self, world, bus):
        store = MemorySaveStore()
        manager = SaveManager(world, store)
        install_autosave(bus, manager)

        bus.emit(EventType.AUTOSAVE, reason="test")

        assert isinstance(world.get_flag(LAST_SAVED_FLAG), float)
        payload = store.read(0)
        assert payload is not None
        assert payload.world.flags[LAST_SAVED_FLAG] == world.get_flag(LAST_SAVED_FLAG)
        assert manager.slot_info(0).last_saved_at == world.get_flag(LAST_SAVED_FLAG)

    def test_autosave_failure_is_logged(self, world, bus):
        class BrokenStore(MemorySaveStore):
            def write(self, slot, payload):
                raise OSError("disk full")

        install_autosave(bus, SaveManager(world, BrokenStore()))
        bus.emit(EventType.AUTOSAVE)  # must not raise


class TestConfig:
    """Test settings persistence."""

    def test_defaults_when_missing(self, tmp_path):
        config = load_config(tmp_path)
        assert config["text_speed"] == 18
        assert config["offline_mode"] is False
        assert config["error_exit_delay"] == DEFAULT_CONFIG["error_exit_delay"]

    @pytest.mark.parametrize("raw,expected", [(1, 6), (6, 6), (40, 40), (80, 80), (500, 80)])
    def test_clamp(self, raw, expected):
        assert clamp_text_speed(raw) == expected

    def test_set_text_speed_clamps_and_persists(self, tmp_path):
        assert set_text_speed(200, tmp_path) == 80
        assert load_config(tmp_path)["text_speed"] == 80

    def test_merge_over_defaults(self, tmp_path):
        get_config_path(tmp_path).write_text(json.dumps({"text_speed": 3}), encoding="utf-8")
        config = load_config(tmp_path)
        assert config["text_speed"] == 6
        assert config["strict_lines"] is False

    def test_corrupt_file_uses_defaults(self, tmp_path):
        get_config_path(tmp_path).write_text("{oops", encoding="utf-8")
        assert load_config(tmp_path)["text_speed"] == 18

    def test_save_and_offline_flag(self, tmp_path, world):
        set_offline_mode(True, tmp_path)
        config = load_config(tmp_path)
        assert config["offline_mode"] is True
        apply_world_flags(config, world)
        assert world.get_flag(OFFLINE_FLAG) is True

    def test_env_overrides_provider(self, tmp_path, monkeypatch):
        monkeypatch.setenv("YISHI_PROVIDER_MODEL", "test-model")
        save_config({**DEFAULT_CONFIG, "provider_model": "file-model"}, tmp_path)
        assert load_config(tmp_path)["provider_model"] == "test-model"
