"""Tests for session persistence, settings migration and preferences."""

import pytest
from conftest import add_paths

from aether_queue.models import ConversionSettings
from aether_queue.queue import (
    APP_SETTINGS_KEY,
    QUEUE_KEY,
    SETTINGS_KEY,
    AppPreferences,
    ItemStore,
    PreferencesRepository,
    ProcessStatus,
    SessionPersistence,
    SettingsRepository,
    ThumbnailLoader,
    migrate_settings,
)


def persisted_store(kv, *paths):
    """Write a collection to kv as a previous run would have left it."""
    previous = ItemStore()
    ids = add_paths(previous, *paths)
    SessionPersistence(previous, kv).save(previous.items)
    return previous, ids


class TestQueuePersistence:
    def test_every_mutation_is_saved(self, store, kv):
        persistence = SessionPersistence(store, kv)
        persistence.attach()
        (a,) = add_paths(store, "/m/a.mp4")
        store.update_progress(a, 30)

        raw = kv.get(QUEUE_KEY)
        assert raw["version"] == 1
        assert raw["state"]["items"][0]["input_path"] == "/m/a.mp4"
        assert raw["state"]["items"][0]["progress"] == 30

    def test_detach_stops_saving(self, store, kv):
        persistence = SessionPersistence(store, kv)
        persistence.attach()
        persistence.detach()
        add_paths(store, "/m/a.mp4")
        assert kv.get(QUEUE_KEY) is None

    def test_selection_is_not_persisted(self, kv):
        previous, ids = persisted_store(kv, "/m/a.mp4")
        previous.select_all()

        store = ItemStore()
        SessionPersistence(store, kv).load()
        assert [i.id for i in store.items] == ids
        assert store.selected_ids == []
        assert "selected_ids" not in kv.get(QUEUE_KEY)["state"]

    def test_unreadable_items_are_dropped(self, store, kv):
        persisted_store(kv, "/m/a.mp4")
        raw = kv.get(QUEUE_KEY)
        raw["state"]["items"].append({"id": "broken", "progress": "lots"})
        kv.set(QUEUE_KEY, raw)

        items = SessionPersistence(store, kv).load()
        assert [i.input_path for i in items] == ["/m/a.mp4"]

    def test_newer_queue_version_rejected(self, store, kv):
        kv.set(QUEUE_KEY, {"version": 99, "state": {"items": []}})
        with pytest.raises(ValueError, match="newer"):
            SessionPersistence(store, kv).load()


class TestStartup:
    @pytest.mark.asyncio(loop_scope="function")
    async def test_previous_session_awaits_decision(self, store, kv):
        persisted_store(kv, "/m/a.mp4", "/m/b.mp4", "/m/c.mp4")
        persistence = SessionPersistence(store, kv)

        needs_decision = await persistence.startup(auto_restore=False)

        assert needs_decision
        assert persistence.has_persisted_queue
        assert not persistence.session_restore_handled
        assert len(store) == 3

    @pytest.mark.asyncio(loop_scope="function")
    async def test_auto_restore(self, store, kv, engine):
        persisted_store(kv, "/m/a.mp4")
        persistence = SessionPersistence(store, kv, ThumbnailLoader(store, engine, yield_s=0))

        needs_decision = await persistence.startup(auto_restore=True)

        assert not needs_decision
        assert persistence.session_restore_handled
        assert not persistence.has_persisted_queue
        assert len(store) == 1

    @pytest.mark.asyncio(loop_scope="function")
    async def test_empty_storage_needs_nothing(self, store, kv):
        persistence = SessionPersistence(store, kv)
        assert not await persistence.startup(auto_restore=False)
        assert not persistence.needs_decision

    @pytest.mark.asyncio(loop_scope="function")
    async def test_discard(self, store, kv, engine):
        persisted_store(kv, "/m/a.mp4", "/m/b.mp4")
        persistence = SessionPersistence(store, kv, ThumbnailLoader(store, engine, yield_s=0))
        await persistence.startup(auto_restore=False)

        await persistence.discard()

        assert len(store) == 0
        assert engine.cleanup_calls == 1
        assert not persistence.needs_decision
        assert kv.get(QUEUE_KEY)["state"]["items"] == []

    @pytest.mark.asyncio(loop_scope="function")
    async def test_restore_revalidates_thumbnails(self, store, kv, engine):
        previous = ItemStore()
        a, b = add_paths(previous, "/m/a.mp4", "/m/b.png")
        previous.set_thumbnail(a, "/t/a.jpg")
        previous.set_thumbnail(b, "/t/b.jpg")
        SessionPersistence(previous, kv).save(previous.items)
        engine.missing.add("/t/b.jpg")

        persistence = SessionPersistence(store, kv, ThumbnailLoader(store, engine, yield_s=0))
        await persistence.startup(auto_restore=False)
        await persistence.restore()

        assert store.get_item(a).thumbnail_status == "loaded"
        assert store.get_item(b).thumbnail_status == "error"
        assert not persistence.needs_decision

    @pytest.mark.asyncio(loop_scope="function")
    async def test_interrupted_items_recovered(self, store, kv):
        previous = ItemStore()
        a, b = add_paths(previous, "/m/a.mp4", "/m/b.mp4")
        previous.update_status(a, ProcessStatus.PROCESSING)
        previous.update_progress(a, 45)
        SessionPersistence(previous, kv).save(previous.items)

        await SessionPersistence(store, kv).startup(auto_restore=False)

        item = store.get_item(a)
        assert item.status == "cancelled"
        assert item.error_message == "Interrupted"
        assert store.get_item(b).status == "pending"
        assert not store.is_processing


class TestSettingsRepository:
    def test_defaults_when_empty(self, kv):
        assert SettingsRepository(kv).load() == ConversionSettings()

    def test_save_and_load(self, kv):
        repo = SettingsRepository(kv)
        repo.save(ConversionSettings(quality_percent=55, video_format="mkv"))
        loaded = repo.load()
        assert loaded.quality_percent == 55
        assert loaded.video_format == "mkv"
        assert kv.get(SETTINGS_KEY)["version"] == 2

    def test_update_validates(self, kv):
        repo = SettingsRepository(kv)
        assert repo.update(is_muted=True).is_muted is True
        assert repo.load().is_muted is True
        with pytest.raises(ValueError):
            repo.update(quality_percent=400)

    def test_reset(self, kv):
        repo = SettingsRepository(kv)
        repo.update(strip_metadata=True)
        assert repo.reset() == ConversionSettings()
        assert repo.load().strip_metadata is False

    def test_invalid_stored_settings_fall_back(self, kv, caplog):
        kv.set(SETTINGS_KEY, {"version": 2, "state": {"settings": {"quality_percent": 500}}})
        assert SettingsRepository(kv).load() == ConversionSettings()
        assert "invalid" in caplog.text

    def test_v1_settings_migrated_on_load(self, kv):
        kv.set(
            SETTINGS_KEY,
            {
                "version": 1,
                "state": {
                    "settings": {
                        "quality_percent": 60,
                        "naming_strategy": "prefix_original",
                        "naming_prefix": "clip",
                        "sanitize_names": True,
                        "overwrite_existing": True,
                    },
                    "output_directory": "/out",
                },
            },
        )
        settings = SettingsRepository(kv).load()

        assert settings.quality_percent == 60
        assert [b.type for b in settings.naming_config.blocks] == ["prefix", "original"]
        assert settings.naming_config.blocks[0].params.value == "clip"
        assert settings.naming_config.sanitize_enabled is True
        assert settings.conflict_mode == "overwrite"
        assert settings.output_directory == "/out"

    def test_newer_settings_version_rejected(self, kv):
        kv.set(SETTINGS_KEY, {"version": 3, "state": {"settings": {}}})
        with pytest.raises(ValueError, match="newer"):
            SettingsRepository(kv).load()


class TestMigrateSettings:
    def test_current_version_untouched(self):
        data = {"quality_percent": 70}
        assert migrate_settings(data, 2) == data

    def test_unknown_strategy_uses_original(self):
        migrated = migrate_settings({"naming_strategy": "emoji"}, 1)
        assert [b["type"] for b in migrated["naming_config"]["blocks"]] == ["original"]

    def test_overwrite_false_maps_to_skip(self):
        assert migrate_settings({"overwrite_existing": False}, 1)["conflict_mode"] == "skip"

    def test_random_length_carried(self):
        migrated = migrate_settings({"naming_strategy": "random", "random_length": 12}, 1)
        block = migrated["naming_config"]["blocks"][0]
        assert block["type"] == "random"
        assert block["params"]["length"] == 12

    def test_existing_naming_config_kept(self):
        config = {"blocks": [{"id": "x", "type": "date"}], "sanitize_enabled": False}
        migrated = migrate_settings({"naming_config": config, "naming_strategy": "prefix"}, 1)
        assert migrated["naming_config"] == config
        assert "naming_strategy" not in migrated


class TestPreferences:
    def test_default_is_ask(self, kv):
        assert PreferencesRepository(kv).load().auto_restore_session is False

    def test_round_trip(self, kv):
        repo = PreferencesRepository(kv)
        repo.save(AppPreferences(auto_restore_session=True))
        assert repo.load().auto_restore_session is True
        assert kv.get(APP_SETTINGS_KEY)["state"] == {"auto_restore_session": True}
