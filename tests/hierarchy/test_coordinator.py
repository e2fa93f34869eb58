import pytest

from exceptions import StoreUnavailableError
from hierarchy.coordinator import CategoryCoordinator
from hierarchy.defaults import default_categories
from models.category import CategoryLevel
from models.requests import (
    CreateCategoryRequest,
    DeleteOptions,
    ReorderRequest,
    UpdateCategoryRequest,
)
from models.results import ErrorCode, ValidationCode
from models.views import CategoryFilter
from tests.helpers import SlowStore, StoreSpy


@pytest.fixture
def spy(services):
    """A recording wrapper around the SQLite category store."""
    return StoreSpy(services.categories)


@pytest.fixture
def spied(spy):
    """A coordinator whose store calls are recorded, already fetched."""
    coordinator = CategoryCoordinator(spy, refresh_delay=60)
    coordinator.fetch_categories()
    spy.calls.clear()
    yield coordinator
    coordinator.close()


def create(coordinator, name, parent_id=None, **kwargs):
    result = coordinator.create_category(
        CreateCategoryRequest(name=name, parent_id=parent_id, **kwargs)
    )
    assert result.success, result.error
    return result.data


class TestFetchCategories:
    """Tests for fetch_categories and the default fallback."""

    def test_fetch_empty_store(self, coordinator):
        """Test fetching from an empty store."""
        result = coordinator.fetch_categories()

        assert result.success
        assert result.data == []
        assert coordinator.categories == []
        assert coordinator.category_tree == []
        assert not coordinator.degraded
        assert coordinator.error is None
        assert not coordinator.loading

    def test_fetch_is_idempotent(self, coordinator, services):
        """Test two fetches in a row yield identical snapshots."""
        parent = services.categories.create_category(CreateCategoryRequest(name="Cardiology"))
        services.categories.create_category(
            CreateCategoryRequest(name="Arrhythmia", parent_id=parent.id)
        )

        coordinator.fetch_categories()
        first = coordinator.categories
        coordinator.fetch_categories()

        assert coordinator.categories == first
        assert len(first) == 2

    def test_fetch_failure_falls_back_to_defaults(self, spy):
        """Test a failed fetch loads the built-in set and marks it degraded."""
        spy.fail("list_categories", StoreUnavailableError("database is locked"))
        coordinator = CategoryCoordinator(spy, refresh_delay=60)

        result = coordinator.fetch_categories()

        assert not result.success
        assert result.error.code == ErrorCode.NETWORK_ERROR
        assert coordinator.error == "database is locked"
        assert coordinator.degraded
        assert [c.id for c in coordinator.categories] == [c.id for c in default_categories()]
        assert len(coordinator.category_tree) == 6
        assert not coordinator.loading

    def test_recovery_clears_degraded(self, spy):
        """Test a later successful fetch replaces the default set."""
        spy.fail("list_categories", StoreUnavailableError("database is locked"))
        coordinator = CategoryCoordinator(spy, refresh_delay=60)
        coordinator.fetch_categories()

        spy.recover()
        result = coordinator.fetch_categories()

        assert result.success
        assert not coordinator.degraded
        assert coordinator.error is None
        assert coordinator.categories == []

    def test_fallback_can_be_disabled(self, spy):
        """Test the snapshot is left alone when the fallback is off."""
        coordinator = CategoryCoordinator(spy, refresh_delay=60, fallback_to_defaults=False)
        create(coordinator, "Cardiology")
        spy.fail("list_categories", StoreUnavailableError("database is locked"))

        coordinator.fetch_categories()

        assert not coordinator.degraded
        assert [c.name for c in coordinator.categories] == ["Cardiology"]

    def test_unexpected_error_is_internal(self, spy):
        """Test that an arbitrary exception maps to INTERNAL_ERROR."""
        spy.fail("list_categories", RuntimeError("unexpected"))
        coordinator = CategoryCoordinator(spy, refresh_delay=60)

        result = coordinator.fetch_categories()

        assert result.error.code == ErrorCode.INTERNAL_ERROR
        assert result.error.message == "unexpected"


class TestCreateCategory:
    """Tests for create_category."""

    def test_create_appends_store_record(self, coordinator):
        """Test the snapshot gains the store's authoritative record."""
        result = coordinator.create_category(
            CreateCategoryRequest(name=" Cardiology ", description="Heart")
        )

        assert result.success
        category = result.data
        assert category.id.startswith("category-")
        assert category.name == "Cardiology"
        assert category.created_at is not None
        assert coordinator.categories == [category]
        assert coordinator.category_tree[0].category == category

    def test_duplicate_name_fails_validation_without_store_call(self, spied, spy):
        """Test creating 'cardiology' after 'Cardiology' at the same level."""
        create(spied, "Cardiology")

        result = spied.create_category(CreateCategoryRequest(name="cardiology"))

        assert not result.success
        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert [e.code for e in result.error.field_errors] == [ValidationCode.DUPLICATE_NAME]
        assert spy.calls == ["create_category"]
        assert len(spied.categories) == 1

    def test_invalid_parent_collects_every_error(self, coordinator):
        """Test a failed result carries every field error."""
        parent = create(coordinator, "Cardiology")
        child = create(coordinator, "Arrhythmia", parent_id=parent.id)

        result = coordinator.create_category(
            CreateCategoryRequest(name="", parent_id=child.id)
        )

        assert [e.code for e in result.error.field_errors] == [
            ValidationCode.NAME_REQUIRED,
            ValidationCode.INVALID_PARENT,
        ]
        assert result.error.message == "Category name is required"

    def test_conflict_from_stale_snapshot(self, coordinator, other_coordinator):
        """Test a sibling name race lost to another session is a CONFLICT."""
        create(other_coordinator, "Cardiology")

        result = coordinator.create_category(CreateCategoryRequest(name="Cardiology"))

        assert result.error.code == ErrorCode.CONFLICT
        assert coordinator.categories == []
        assert coordinator.error is not None

    def test_store_failure_leaves_snapshot_unchanged(self, spied, spy):
        """Test a failed create does not touch the snapshot."""
        create(spied, "Cardiology")
        before = spied.categories
        spy.fail("create_category", StoreUnavailableError("disk I/O error"))

        result = spied.create_category(CreateCategoryRequest(name="Neurology"))

        assert result.error.code == ErrorCode.NETWORK_ERROR
        assert spied.categories == before
        assert not spied.loading


class TestUpdateCategory:
    """Tests for update_category."""

    def test_update_replaces_entry(self, coordinator):
        """Test the snapshot entry is swapped for the store's response."""
        category = create(coordinator, "Cardiology")

        result = coordinator.update_category(
            category.id, UpdateCategoryRequest(name="Cardiovascular", color="#ef4444")
        )

        assert result.success
        assert [c.name for c in coordinator.categories] == ["Cardiovascular"]
        assert coordinator.categories[0].color == "#ef4444"

    def test_update_unknown_id_is_not_found(self, spied, spy):
        """Test an id missing from the snapshot fails without a store call."""
        result = spied.update_category("category-missing", UpdateCategoryRequest(name="X"))

        assert result.error.code == ErrorCode.NOT_FOUND
        assert spy.calls == []

    def test_update_validates_excluding_itself(self, coordinator):
        """Test renaming to a different case of its own name."""
        category = create(coordinator, "Cardiology")

        result = coordinator.update_category(category.id, UpdateCategoryRequest(name="CARDIOLOGY"))

        assert result.success

    def test_update_primary_to_secondary_rejected(self, coordinator):
        """Test a primary cannot be moved under another category."""
        a = create(coordinator, "Cardiology")
        b = create(coordinator, "Neurology")

        result = coordinator.update_category(b.id, UpdateCategoryRequest(parent_id=a.id))

        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert [e.code for e in result.error.field_errors] == [ValidationCode.INVALID_LEVEL]

    def test_move_secondary(self, coordinator):
        """Test moving a subcategory to another primary updates the tree."""
        a = create(coordinator, "Cardiology")
        b = create(coordinator, "Internal Medicine")
        child = create(coordinator, "Hypertension", parent_id=a.id)

        result = coordinator.update_category(child.id, UpdateCategoryRequest(parent_id=b.id))

        assert result.success
        tree = {node.id: [c.id for c in node.children] for node in coordinator.category_tree}
        assert tree == {a.id: [], b.id: [child.id]}


class TestDeleteCategories:
    """Tests for delete_category and delete_categories."""

    def test_unsafe_delete_rejected_then_forced_with_cascade(self, spied, spy, services):
        """Test a primary with two children: rejected, then forced with cascade."""
        parent = create(spied, "Cardiology")
        create(spied, "Arrhythmia", parent_id=parent.id)
        create(spied, "Heart Failure", parent_id=parent.id)
        spy.calls.clear()

        rejected = spied.delete_category(parent.id, DeleteOptions(force=False))

        assert rejected.error.code == ErrorCode.DELETE_RESTRICTED
        assert rejected.error.details["impact"].children_count == 2
        assert spy.calls == []
        assert len(spied.categories) == 3

        result = spied.delete_category(parent.id, DeleteOptions(force=True, cascade=True))

        assert result.success
        assert services.categories.list_categories() == []
        assert spied.categories == []
        assert spy.calls == ["delete_category", "list_categories"]

    def test_safe_delete_removes_locally(self, spied, spy):
        """Test a safe delete drops the id without refetching."""
        a = create(spied, "Cardiology")
        b = create(spied, "Neurology")
        spy.calls.clear()

        result = spied.delete_category(a.id)

        assert result.success
        assert result.data == [a.id]
        assert [c.id for c in spied.categories] == [b.id]
        assert spy.calls == ["delete_category"]

    def test_audio_makes_delete_unsafe(self, coordinator, services):
        """Test a category with audio needs force."""
        category = create(coordinator, "Cardiology")
        services.audios.create("Lecture", category_id=category.id)
        coordinator.fetch_categories()

        result = coordinator.delete_category(category.id)

        assert result.error.code == ErrorCode.DELETE_RESTRICTED
        assert coordinator.analyze_delete([category.id]).audio_count == 1

    def test_impact_agrees_with_store_for_subcategory_audio(self, coordinator, services):
        """Test audio filed under a removed subcategory still guards its primary."""
        parent = create(coordinator, "Cardiology")
        child = create(coordinator, "Arrhythmia", parent_id=parent.id)
        services.audios.create("Lecture", category_id=parent.id, subcategory_id=child.id)
        coordinator.fetch_categories()
        assert coordinator.get_category_by_id(parent.id).audio_count == 1

        removed = coordinator.delete_category(
            child.id, DeleteOptions(force=True, update_audios=False)
        )
        assert removed.success
        coordinator.fetch_categories()

        impact = coordinator.analyze_delete([parent.id])
        assert not impact.can_safe_delete
        assert impact.audio_count == 1

        rejected = coordinator.delete_category(parent.id)
        assert rejected.error.code == ErrorCode.DELETE_RESTRICTED
        assert rejected.error.details["impact"].audio_count == 1
        assert coordinator.get_category_by_id(parent.id) is not None

        assert coordinator.delete_category(parent.id, DeleteOptions(force=True)).success

    def test_forced_delete_without_cascade_orphans_children(self, coordinator):
        """Test orphans stay in the snapshot and are reported by validation."""
        parent = create(coordinator, "Cardiology")
        child = create(coordinator, "Arrhythmia", parent_id=parent.id)

        result = coordinator.delete_category(parent.id, DeleteOptions(force=True))

        assert result.success
        assert [c.id for c in coordinator.categories] == [child.id]
        assert coordinator.category_tree == []
        assert coordinator.get_category_stats().level2_count == 1
        report = coordinator.validate_hierarchy()
        assert [(i.code, i.category_id) for i in report.issues] == [
            (ValidationCode.ORPHANED, child.id)
        ]
        assert coordinator.find_orphans() == [child]

    def test_batch_delete_uses_one_request(self, spied, spy):
        """Test deleting several categories issues a single batch request."""
        a = create(spied, "Cardiology")
        b = create(spied, "Neurology")
        spy.calls.clear()

        result = spied.delete_categories([a.id, b.id, a.id])

        assert result.success
        assert result.data == [a.id, b.id]
        assert spy.calls == ["batch_delete_categories"]
        assert spied.categories == []

    def test_batch_partial_failure_is_single_error(self, coordinator, other_coordinator):
        """Test per-item store failures surface as one failed result."""
        a = create(coordinator, "Cardiology")
        b = create(coordinator, "Neurology")
        other_coordinator.fetch_categories()
        create(other_coordinator, "Arrhythmia", parent_id=a.id)
        before = coordinator.categories

        result = coordinator.delete_categories([a.id, b.id])

        assert not result.success
        assert result.error.code == ErrorCode.INTERNAL_ERROR
        assert result.error.details["succeeded"] == [b.id]
        assert [f.category_id for f in result.error.details["failed"]] == [a.id]
        assert coordinator.categories == before

    def test_delete_unknown_id(self, spied, spy):
        """Test an unknown id fails without a store call."""
        result = spied.delete_categories(["category-missing"])

        assert result.error.code == ErrorCode.NOT_FOUND
        assert spy.calls == []

    def test_delete_nothing(self, spied, spy):
        """Test an empty selection succeeds without a store call."""
        assert spied.delete_categories([]).success
        assert spy.calls == []


class TestReorderAndStatus:
    """Tests for reorder_categories and set_categories_active."""

    def test_reorder_then_refetch(self, spied, spy):
        """Test reordering x to 5 and y to 1 places y before x."""
        x = create(spied, "X-ray")
        y = create(spied, "Yellow Fever")
        spy.calls.clear()

        result = spied.reorder_categories(
            [ReorderRequest(x.id, 5), ReorderRequest(y.id, 1)]
        )

        assert result.success
        assert spy.calls == ["reorder_categories", "list_categories"]
        assert [node.id for node in spied.category_tree] == [y.id, x.id]

    def test_reorder_unknown_id(self, spied, spy):
        """Test reordering an id missing from the snapshot."""
        result = spied.reorder_categories([ReorderRequest("category-missing", 1)])

        assert result.error.code == ErrorCode.NOT_FOUND
        assert spy.calls == []

    def test_empty_reorder(self, spied, spy):
        """Test an empty batch is a no-op."""
        assert spied.reorder_categories([]).success
        assert spy.calls == []

    def test_deactivate_and_activate(self, spied, spy):
        """Test status changes persist and refetch."""
        a = create(spied, "Cardiology")
        b = create(spied, "Neurology")
        spy.calls.clear()

        result = spied.set_categories_active([a.id], False)

        assert result.success
        assert spy.calls == ["batch_update_status", "list_categories"]
        assert [o.value for o in spied.get_category_options()] == [b.id]
        assert spied.get_category_stats().inactive_count == 1

        spied.set_categories_active([a.id], True)
        assert spied.get_category_stats().inactive_count == 0


class TestDerivedViews:
    """Tests for the read-only views exposed by the coordinator."""

    def test_views_memoized_per_snapshot(self, coordinator):
        """Test derived values are reused until the snapshot changes."""
        create(coordinator, "Cardiology")

        stats = coordinator.get_category_stats()
        tree = coordinator.category_tree

        assert coordinator.get_category_stats() is stats
        assert coordinator.category_tree is tree

        create(coordinator, "Neurology")

        assert coordinator.get_category_stats() is not stats
        assert coordinator.get_category_stats().total_categories == 2

    def test_options_and_path(self, coordinator):
        """Test options and breadcrumb paths reflect the snapshot."""
        parent = create(coordinator, "Cardiology")
        child = create(coordinator, "Arrhythmia", parent_id=parent.id)

        primary = coordinator.get_category_options(CategoryLevel.PRIMARY)
        secondary = coordinator.get_subcategory_options(parent.id)
        path = coordinator.get_category_path(parent.id, child.id)

        assert [o.value for o in primary] == [parent.id]
        assert [o.value for o in secondary] == [child.id]
        assert path.as_string() == "Cardiology > Arrhythmia"

    def test_lookup_by_id_and_name(self, coordinator):
        """Test finding categories in the snapshot."""
        parent = create(coordinator, "Cardiology")
        child = create(coordinator, "Arrhythmia", parent_id=parent.id)

        assert coordinator.get_category_by_id(child.id) == child
        assert coordinator.get_category_by_id("category-missing") is None
        assert coordinator.get_category_by_name("cardiology") == parent
        assert coordinator.get_category_by_name("Arrhythmia") is None
        assert coordinator.get_category_by_name("arrhythmia", parent.id) == child

    def test_validate_category_has_no_side_effects(self, spied, spy):
        """Test standalone validation never reaches the store."""
        result = spied.validate_category(CreateCategoryRequest(name=""))

        assert not result.is_valid
        assert spy.calls == []

    def test_selection_filter_and_search(self, coordinator, services):
        """Test picker selection checks, filtering and search on the snapshot."""
        parent = create(coordinator, "Cardiology", description="Heart sounds")
        child = create(coordinator, "Arrhythmia", parent_id=parent.id)
        other = create(coordinator, "Neurology")
        services.audios.create("Murmur", parent.id, child.id)
        coordinator.fetch_categories()

        assert coordinator.validate_selection(parent.id, child.id).is_valid
        mismatch = coordinator.validate_selection(other.id, child.id)
        assert ValidationCode.SELECTION_MISMATCH in mismatch.codes()
        assert not coordinator.validate_selection(None, child.id).is_valid

        with_audio = coordinator.filter_categories(CategoryFilter(has_audio=True))
        assert {c.id for c in with_audio} == {parent.id, child.id}
        family = coordinator.filter_categories(CategoryFilter(category_id=parent.id))
        assert {c.id for c in family} == {parent.id, child.id}

        assert [c.id for c in coordinator.search_categories("heart")] == [parent.id]
        assert coordinator.search_categories("  ") == coordinator.filter_categories(
            CategoryFilter()
        )

    def test_hierarchical_options(self, coordinator):
        """Test nested options skip inactive entries unless asked."""
        parent = create(coordinator, "Cardiology")
        child = create(coordinator, "Arrhythmia", parent_id=parent.id)
        murmurs = create(coordinator, "Murmurs", parent_id=parent.id)
        assert coordinator.set_categories_active([murmurs.id], False).success

        options = coordinator.get_hierarchical_options()
        everything = coordinator.get_hierarchical_options(include_inactive=True)

        assert [o.value for o in options] == [parent.id]
        assert [c.value for c in options[0].children] == [child.id]
        assert len(everything[0].children) == 2


class TestChangeNotifications:
    """Tests for cross-session refresh through the event bus."""

    def test_write_schedules_refresh_in_other_sessions(self, coordinator, other_coordinator):
        """Test another coordinator picks up a change after its debounce."""
        category = create(coordinator, "Cardiology")

        assert other_coordinator.refresh_pending
        assert not coordinator.refresh_pending
        assert other_coordinator.categories == []

        assert other_coordinator.flush_pending_refresh()
        assert other_coordinator.categories == [category]

    def test_many_changes_refresh_once(self, spy, services):
        """Test a burst of notifications triggers a single refetch."""
        watcher = CategoryCoordinator(spy, event_bus=services.event_bus, refresh_delay=60)
        writer = services.create_coordinator()
        spy.calls.clear()

        create(writer, "Cardiology")
        create(writer, "Neurology")
        watcher.on_external_categories_changed()
        watcher.flush_pending_refresh()

        assert spy.calls == ["list_categories"]
        assert len(watcher.categories) == 2
        watcher.close()
        writer.close()

    def test_timer_refresh_during_create_keeps_ids_unique(self, services):
        """Test a refresh firing mid-create waits and leaves one entry per id."""
        slow = SlowStore(services.categories, delay=0.3)
        coordinator = CategoryCoordinator(slow, refresh_delay=0.05)
        coordinator.fetch_categories()
        try:
            coordinator.on_external_categories_changed()
            created = create(coordinator, "Cardiology")

            assert coordinator.wait_for_refresh(timeout=5)
            assert [c.id for c in coordinator.categories] == [created.id]
            assert slow.calls == ["list_categories", "create_category", "list_categories"]
            assert coordinator.loading is False
            assert coordinator.error is None
        finally:
            coordinator.close()

    def test_timer_refresh_in_other_session(self, services):
        """Test the debounce timer refreshes a watching coordinator on its own."""
        writer = services.create_coordinator()
        watcher = CategoryCoordinator(
            services.categories, event_bus=services.event_bus, refresh_delay=0.05
        )
        watcher.fetch_categories()
        try:
            created = create(writer, "Cardiology")

            assert watcher.wait_for_refresh(timeout=5)
            assert not watcher.refresh_pending
            assert [c.id for c in watcher.categories] == [created.id]
            assert [node.category.id for node in watcher.category_tree] == [created.id]
            assert watcher.get_category_stats().total_categories == 1
        finally:
            watcher.close()
            writer.close()

    def test_closed_coordinator_ignores_events(self, coordinator, other_coordinator):
        """Test that close unsubscribes and cancels pending refreshes."""
        create(coordinator, "Cardiology")
        other_coordinator.close()

        create(coordinator, "Neurology")

        assert not other_coordinator.refresh_pending
        assert other_coordinator.categories == []

    def test_from_config(self, test_config, services):
        """Test the coordinator picks up refresh settings from config."""
        test_config.fallback_to_defaults = False

        coordinator = CategoryCoordinator.from_config(test_config, services.categories)

        assert coordinator.fallback_to_defaults is False
        assert coordinator.event_bus is None
        coordinator.close()
