"""Unit tests for the item store.

Tests cover:
- Deduplicated insertion
- Removal and clearing gated by the processing flag
- Selection and expansion cursor
- Status transitions, resume and retry
- Thumbnail and override setters
- Mutation listeners
"""

from conftest import add_paths, descriptor

from aether_queue.models import SettingsOverride
from aether_queue.queue import ItemStore, ProcessStatus


class TestAddItems:
    def test_appends_pending_items_in_order(self, store):
        result = store.add_items([descriptor("/m/a.mp4"), descriptor("/m/b.png")])
        assert result.added == 2
        assert result.skipped == 0
        assert [i.input_path for i in store.items] == ["/m/a.mp4", "/m/b.png"]
        for item in store.items:
            assert item.status == "pending"
            assert item.progress == 0
            assert item.thumbnail_status == "pending"

    def test_skips_known_paths(self, store):
        add_paths(store, "/m/a.mp4")
        result = store.add_items([descriptor("/m/a.mp4"), descriptor("/m/c.mp3")])
        assert result.added == 1
        assert result.skipped == 1
        assert [i.input_path for i in result.new_items] == ["/m/c.mp3"]
        assert len(store) == 2

    def test_skips_repeats_within_batch(self, store):
        result = store.add_items([descriptor("/m/a.mp4"), descriptor("/m/a.mp4")])
        assert result.added == 1
        assert result.skipped == 1

    def test_returned_items_are_copies(self, store):
        result = store.add_items([descriptor("/m/a.mp4")])
        result.new_items[0].progress = 50
        assert store.items[0].progress == 0


class TestRemoveAndClear:
    def test_remove_prunes_selection_and_expansion(self, store):
        a, b = add_paths(store, "/m/a.mp4", "/m/b.mp4")
        store.select_all()
        store.set_expanded_id(a)
        assert store.remove_items([a]) == 1
        assert store.selected_ids == [b]
        assert store.expanded_id is None

    def test_remove_is_noop_while_processing(self, store):
        (a,) = add_paths(store, "/m/a.mp4")
        store.set_processing(True)
        assert store.remove_items([a]) == 0
        assert len(store) == 1

    def test_clear_queue(self, store):
        add_paths(store, "/m/a.mp4", "/m/b.mp4")
        store.select_all()
        store.clear_queue()
        assert len(store) == 0
        assert store.selected_ids == []

    def test_clear_is_noop_while_processing(self, store):
        add_paths(store, "/m/a.mp4")
        store.set_processing(True)
        store.clear_queue()
        assert len(store) == 1


class TestSelection:
    def test_single_select_replaces(self, store):
        a, b = add_paths(store, "/m/a.mp4", "/m/b.mp4")
        store.select_item(a)
        store.select_item(b)
        assert store.selected_ids == [b]
        assert store.last_clicked_id == b

    def test_multi_toggles(self, store):
        a, b = add_paths(store, "/m/a.mp4", "/m/b.mp4")
        store.select_item(a, multi=True)
        store.select_item(b, multi=True)
        store.select_item(a, multi=True)
        assert store.selected_ids == [b]

    def test_add_to_selection_is_idempotent(self, store):
        a, b = add_paths(store, "/m/a.mp4", "/m/b.mp4")
        store.add_to_selection(b)
        store.add_to_selection(a)
        store.add_to_selection(b)
        assert store.selected_ids == [b, a]

    def test_range_select_is_inclusive_in_both_directions(self, store):
        ids = add_paths(store, "/m/1.mp4", "/m/2.mp4", "/m/3.mp4", "/m/4.mp4")
        store.select_range(ids[3], ids[1])
        assert set(store.selected_ids) == {ids[1], ids[2], ids[3]}

    def test_selected_items_follow_collection_order(self, store):
        a, b, c = add_paths(store, "/m/a.mp4", "/m/b.mp4", "/m/c.mp4")
        store.select_item(c, multi=True)
        store.select_item(a, multi=True)
        assert [i.id for i in store.get_selected_items()] == [a, c]

    def test_deselect_all(self, store):
        add_paths(store, "/m/a.mp4")
        store.select_all()
        store.deselect_all()
        assert store.selected_ids == []


class TestStatus:
    def test_completed_forces_full_progress(self, store):
        (a,) = add_paths(store, "/m/a.mp4")
        store.update_status(a, ProcessStatus.PROCESSING)
        store.update_progress(a, 40)
        store.update_status(a, ProcessStatus.COMPLETED)
        item = store.get_item(a)
        assert item.status == "completed"
        assert item.progress == 100

    def test_error_message_attached(self, store):
        (a,) = add_paths(store, "/m/a.mp4")
        store.update_status(a, ProcessStatus.PROCESSING)
        store.update_status(a, ProcessStatus.ERROR, "codec missing")
        assert store.get_item(a).error_message == "codec missing"

    def test_invalid_transition_is_noop(self, store):
        (a,) = add_paths(store, "/m/a.mp4")
        assert not store.update_status(a, ProcessStatus.COMPLETED)
        assert store.get_item(a).status == "pending"

    def test_terminal_state_is_not_overwritten(self, store):
        (a,) = add_paths(store, "/m/a.mp4")
        store.update_status(a, ProcessStatus.PROCESSING)
        store.update_status(a, ProcessStatus.COMPLETED)
        assert not store.update_status(a, ProcessStatus.CANCELLED, "late cancel")
        assert store.get_item(a).status == "completed"

    def test_progress_is_clamped(self, store):
        (a,) = add_paths(store, "/m/a.mp4")
        store.update_progress(a, 150)
        assert store.get_item(a).progress == 100

    def test_next_pending_item(self, store):
        a, b = add_paths(store, "/m/a.mp4", "/m/b.mp4")
        store.update_status(a, ProcessStatus.PROCESSING)
        assert store.get_next_pending_item().id == b

    def test_next_pending_item_none(self, store):
        assert store.get_next_pending_item() is None


def _set_terminal(store: ItemStore, item_id: str, status: ProcessStatus) -> None:
    store.update_status(item_id, ProcessStatus.PROCESSING)
    store.update_status(item_id, status, "msg")


class TestResumeAndRetry:
    def _populate(self, store):
        ids = add_paths(store, "/m/c.mp4", "/m/e.mp4", "/m/d.mp4", "/m/p.mp4", "/m/x.mp4")
        _set_terminal(store, ids[0], ProcessStatus.CANCELLED)
        _set_terminal(store, ids[1], ProcessStatus.ERROR)
        _set_terminal(store, ids[2], ProcessStatus.COMPLETED)
        store.update_status(ids[3], ProcessStatus.PROCESSING)
        _set_terminal(store, ids[4], ProcessStatus.CONFLICT)
        return ids

    def test_resume_without_errors(self, store):
        c, e, d, p, x = self._populate(store)
        assert store.resume_queue(retry_errors=False) == 1
        assert store.get_item(c).status == "pending"
        assert store.get_item(c).error_message is None
        assert store.get_item(e).status == "error"
        assert store.get_item(d).status == "completed"
        assert store.get_item(p).status == "processing"
        assert store.get_item(x).status == "conflict"

    def test_resume_with_errors(self, store):
        c, e, d, p, x = self._populate(store)
        assert store.resume_queue(retry_errors=True) == 2
        assert store.get_item(e).status == "pending"
        assert store.get_item(d).status == "completed"

    def test_retry_completed(self, store):
        c, e, d, p, x = self._populate(store)
        assert store.retry_completed() == 1
        item = store.get_item(d)
        assert item.status == "pending"
        assert item.progress == 0

    def test_retry_conflicts(self, store):
        c, e, d, p, x = self._populate(store)
        assert store.retry_conflicts() == 1
        assert store.get_item(x).status == "pending"

    def test_reset_to_pending_only_cancelled_or_error(self, store):
        c, e, d, p, x = self._populate(store)
        assert store.reset_to_pending([c, d, e]) == 2
        assert store.get_item(d).status == "completed"

    def test_recover_interrupted(self, store):
        c, e, d, p, x = self._populate(store)
        assert store.recover_interrupted() == 1
        item = store.get_item(p)
        assert item.status == "cancelled"
        assert item.error_message == "Interrupted"


class TestThumbnails:
    def test_loading_only_from_pending(self, store):
        (a,) = add_paths(store, "/m/a.mp4")
        store.set_thumbnail_loading(a)
        assert store.get_item(a).thumbnail_status == "loading"
        store.set_thumbnail(a, "/t/a.jpg")
        store.set_thumbnail_loading(a)
        item = store.get_item(a)
        assert item.thumbnail_status == "loaded"
        assert item.thumbnail_path == "/t/a.jpg"

    def test_mark_missing(self, store):
        a, b = add_paths(store, "/m/a.mp4", "/m/b.mp4")
        store.set_thumbnail(a, "/t/a.jpg")
        store.set_thumbnail(b, "/t/b.jpg")
        assert store.mark_thumbnails_missing({"/t/b.jpg"}) == 1
        assert store.get_item(a).thumbnail_status == "loaded"
        assert store.get_item(b).thumbnail_status == "error"


class TestOverrides:
    def test_update_merges_shallowly(self, store):
        (a,) = add_paths(store, "/m/a.mp4")
        store.update_overrides(a, SettingsOverride(quality_percent=50))
        store.update_overrides(a, SettingsOverride(is_muted=True))
        assert store.get_item(a).override_settings.overridden() == {
            "quality_percent": 50,
            "is_muted": True,
        }

    def test_set_replaces(self, store):
        (a,) = add_paths(store, "/m/a.mp4")
        store.update_overrides(a, SettingsOverride(quality_percent=50))
        store.set_overrides(a, SettingsOverride(is_muted=True))
        assert store.get_item(a).override_settings.overridden() == {"is_muted": True}

    def test_clear_sets_none(self, store):
        (a,) = add_paths(store, "/m/a.mp4")
        store.update_overrides(a, SettingsOverride(quality_percent=50))
        store.clear_overrides(a)
        assert store.get_item(a).override_settings is None

    def test_clear_all(self, store):
        a, b = add_paths(store, "/m/a.mp4", "/m/b.mp4")
        store.update_overrides(a, SettingsOverride(quality_percent=50))
        store.update_overrides(b, SettingsOverride(quality_percent=60))
        store.clear_all_overrides()
        assert all(i.override_settings is None for i in store.items)


class TestListeners:
    def test_called_after_collection_mutations(self, store):
        snapshots = []
        store.add_listener(snapshots.append)
        (a,) = add_paths(store, "/m/a.mp4")
        store.update_progress(a, 10)
        assert len(snapshots) == 2
        assert snapshots[-1][0].progress == 10

    def test_not_called_for_selection(self, store):
        (a,) = add_paths(store, "/m/a.mp4")
        snapshots = []
        store.add_listener(snapshots.append)
        store.select_item(a)
        store.set_expanded_id(a)
        assert snapshots == []

    def test_unsubscribe(self, store):
        snapshots = []
        unsubscribe = store.add_listener(snapshots.append)
        unsubscribe()
        add_paths(store, "/m/a.mp4")
        assert snapshots == []


def test_replace_items_drops_duplicate_paths(store):
    other = ItemStore()
    add_paths(other, "/m/a.mp4", "/m/b.mp4")
    items = other.items + [other.items[0].model_copy(update={"id": "dup"})]
    store.replace_items(items)
    assert [i.input_path for i in store.items] == ["/m/a.mp4", "/m/b.mp4"]
