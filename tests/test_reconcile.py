"""Tests for observation reconciliation and commit."""

from datetime import datetime, timedelta, timezone

import pytest

from larder.db import InventoryDB, UndoDB
from larder.errors import PartialFailure, Unauthorized, ValidationError
from larder.models import (
    DuplicatePolicy,
    InventoryItem,
    Location,
    MergeMode,
    ObservedItem,
    ReviewItem,
    ReviewList,
)
from larder.reconcile import ObservationReconciler, merge_duplicates
from larder.undo import UndoLedger

OWNER = "household-1"


def _existing(item_id, name, quantity=1.0, location=Location.FRIDGE):
    return InventoryItem(
        id=item_id, owner_id=OWNER, location=location, name=name, quantity=quantity
    )


def _review_item(name, quantity, item_id=None, location=Location.FRIDGE):
    return ReviewItem(name=name, location=location, quantity=quantity, item_id=item_id)


@pytest.fixture
def inventory(tmp_path):
    db = InventoryDB(db_path=tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def stocked(inventory):
    """Fridge with eggs, milk and yogurt; returns their IDs by name."""
    ids = {}
    for name, qty in [("Eggs", 12), ("Milk", 1), ("Yogurt", 2)]:
        ids[name] = inventory.add_item(OWNER, _review_item(name, qty))
    return ids


class TestReconcile:
    def test_scan_review_list(self):
        existing = [_existing(1, "Eggs", 12), _existing(2, "Milk"), _existing(3, "Yogurt", 2)]
        observed = [
            ObservedItem(name="egg", quantity=6, confidence=0.9),
            ObservedItem(name="Milk", quantity=1, confidence=0.5),
            ObservedItem(name="Butter", quantity=1, confidence=0.95),
        ]

        review = ObservationReconciler().reconcile(observed, existing, Location.FRIDGE)

        egg, milk, butter, yogurt = review.items
        assert (egg.item_id, egg.quantity, egg.selected) == (1, 6, True)
        assert (milk.item_id, milk.selected) == (2, False)
        assert (butter.item_id, butter.selected) == (None, True)
        assert yogurt.not_detected
        assert (yogurt.item_id, yogurt.quantity, yogurt.selected) == (3, 0, True)
        assert review.detected == [egg, milk, butter]
        assert review.carried_over == [yogurt]
        assert review.removals() == [yogurt]

    def test_confidence_threshold_inclusive(self):
        observed = [
            ObservedItem(name="Kale", confidence=0.7),
            ObservedItem(name="Leek", confidence=0.69),
        ]
        review = ObservationReconciler().reconcile(observed, [], Location.FRIDGE)
        assert [i.selected for i in review.items] == [True, False]

    def test_every_existing_item_appears_once(self):
        existing = [_existing(1, "Eggs"), _existing(2, "eggs"), _existing(3, "Ham")]
        observed = [ObservedItem(name="Egg", quantity=6)]

        review = ObservationReconciler().reconcile(observed, existing, Location.FRIDGE)

        ids = [i.item_id for i in review.items if i.item_id is not None]
        assert sorted(ids) == [1, 2, 3]
        assert review.items[0].item_id == 1
        assert {i.item_id for i in review.carried_over} == {2, 3}

    def test_extra_duplicates_reuse_first_match(self):
        existing = [_existing(1, "Eggs")]
        observed = [ObservedItem(name="eggs", quantity=6), ObservedItem(name="Egg", quantity=2)]

        review = ObservationReconciler().reconcile(observed, existing, Location.FRIDGE)

        assert [i.item_id for i in review.items] == [1, 1]
        assert review.carried_over == []

    def test_matched_id_hint_wins(self):
        existing = [_existing(1, "Cheddar"), _existing(2, "Cheese")]
        observed = [ObservedItem(name="Cheese", matched_id=1)]
        review = ObservationReconciler().reconcile(observed, existing, Location.FRIDGE)
        assert review.items[0].item_id == 1
        assert [i.item_id for i in review.carried_over] == [2]

    def test_no_carry_over(self):
        existing = [_existing(1, "Yogurt")]
        observed = [ObservedItem(name="Butter")]
        review = ObservationReconciler().reconcile(
            observed, existing, Location.FRIDGE, carry_over=False
        )
        assert [i.name for i in review.items] == ["Butter"]

    def test_duplicates_keep(self):
        observed = [ObservedItem(name="Apples", quantity=2), ObservedItem(name="apple", quantity=3)]
        review = ObservationReconciler().reconcile(observed, [], Location.FRIDGE)
        assert [i.quantity for i in review.items] == [2, 3]

    def test_duplicates_merge(self):
        observed = [
            ObservedItem(name="Apples", quantity=2, confidence=0.6),
            ObservedItem(name="apple", quantity=3, confidence=0.8),
        ]
        reconciler = ObservationReconciler(duplicates=DuplicatePolicy.MERGE)
        [item] = reconciler.reconcile(observed, [], Location.FRIDGE).items
        assert item.name == "Apples"
        assert item.quantity == 5
        assert item.confidence == 0.8
        assert item.selected

    def test_merge_duplicates_does_not_mutate_input(self):
        first = ObservedItem(name="Pear", quantity=1)
        merge_duplicates([first, ObservedItem(name="pears", quantity=1)])
        assert first.quantity == 1

    @pytest.mark.parametrize(
        "item, message",
        [
            (ObservedItem(name=""), "name is empty"),
            (ObservedItem(name="Eggs", quantity=-1), "quantity"),
            (ObservedItem(name="Eggs", quantity=float("nan")), "quantity"),
            (ObservedItem(name="Eggs", confidence=1.5), "confidence"),
        ],
    )
    def test_invalid_observation(self, item, message):
        with pytest.raises(ValidationError, match=message):
            ObservationReconciler().reconcile([item], [], Location.FRIDGE)

    def test_empty_observation_carries_everything_over(self):
        existing = [_existing(1, "Eggs"), _existing(2, "Milk")]
        review = ObservationReconciler().reconcile([], existing, Location.FRIDGE)
        assert len(review.carried_over) == 2
        assert all(i.quantity == 0 for i in review.items)


class TestCommit:
    def test_commit_scan(self, inventory, stocked):
        reconciler = ObservationReconciler()
        existing = inventory.get_active_inventory(OWNER, Location.FRIDGE)
        observed = [
            ObservedItem(name="egg", quantity=6, confidence=0.9),
            ObservedItem(name="Milk", quantity=3, confidence=0.5),
            ObservedItem(name="Butter", quantity=1, confidence=0.95),
        ]
        review = reconciler.reconcile(observed, existing, Location.FRIDGE)

        result = reconciler.commit(review, OWNER, inventory)

        assert (result.inserted, result.updated, result.deleted) == (1, 1, 1)
        assert result.errors == []
        assert result.updated_ids == [stocked["Eggs"]]
        assert result.deleted_ids == [stocked["Yogurt"]]
        remaining = {i.name: i.quantity for i in inventory.get_active_inventory(OWNER)}
        # milk was below the threshold and left untouched
        assert remaining == {"Eggs": 6, "Milk": 1, "Butter": 1}

    def test_unselected_rows_ignored(self, inventory, stocked):
        review = ReviewList(
            location=Location.FRIDGE,
            items=[_review_item("Yogurt", 0, item_id=stocked["Yogurt"])],
        )
        review.items[0].selected = False
        result = ObservationReconciler().commit(review, OWNER, inventory)
        assert result.total == 0
        assert inventory.get_item(stocked["Yogurt"], OWNER) is not None

    def test_zero_quantity_new_item_is_skipped(self, inventory):
        review = ReviewList(location=Location.FRIDGE, items=[_review_item("Kale", 0)])
        result = ObservationReconciler().commit(review, OWNER, inventory)
        assert result.skipped == 1
        assert inventory.get_active_inventory(OWNER) == []

    def test_item_failures_are_collected(self, inventory, stocked):
        review = ReviewList(
            location=Location.FRIDGE,
            items=[
                _review_item("Ghost", 2, item_id=9999),
                _review_item("Gone", 0, item_id=9998),
                _review_item("Butter", 1),
                _review_item("Broken", -1),
            ],
        )
        result = ObservationReconciler().commit(review, OWNER, inventory)

        assert result.inserted == 1
        assert [e.kind for e in result.errors] == ["not_found", "not_found", "validation"]
        assert result.errors[0].item_id == 9999
        assert result.total == len(review.selected)
        with pytest.raises(PartialFailure) as exc_info:
            result.raise_for_errors()
        assert exc_info.value.result is result

    def test_other_owner_rows_not_found(self, inventory, stocked):
        review = ReviewList(
            location=Location.FRIDGE,
            items=[_review_item("Eggs", 0, item_id=stocked["Eggs"])],
        )
        result = ObservationReconciler().commit(review, "intruder", inventory)
        assert result.deleted == 0
        assert result.errors[0].kind == "not_found"
        assert inventory.get_item(stocked["Eggs"], OWNER) is not None

    @pytest.mark.parametrize(
        "mode, expected, updated, skipped",
        [
            (MergeMode.REPLACE, 4, 1, 0),
            (MergeMode.ADD, 16, 1, 0),
            (MergeMode.SKIP, 12, 0, 1),
        ],
    )
    def test_merge_modes(self, inventory, stocked, mode, expected, updated, skipped):
        review = ReviewList(
            location=Location.FRIDGE,
            items=[_review_item("Eggs", 4, item_id=stocked["Eggs"])],
        )
        result = ObservationReconciler(merge_mode=mode).commit(review, OWNER, inventory)
        assert (result.updated, result.skipped) == (updated, skipped)
        assert inventory.get_item(stocked["Eggs"], OWNER).quantity == expected

    def test_add_mode_zero_quantity_skips_detected_rows(self, inventory, stocked):
        carried = _review_item("Yogurt", 0, item_id=stocked["Yogurt"])
        carried.not_detected = True
        review = ReviewList(
            location=Location.FRIDGE,
            items=[_review_item("Milk", 0, item_id=stocked["Milk"]), carried],
            merge_mode=MergeMode.ADD,
        )
        result = ObservationReconciler().commit(review, OWNER, inventory)

        assert (result.skipped, result.deleted) == (1, 1)
        assert result.deleted_ids == [stocked["Yogurt"]]
        assert inventory.get_item(stocked["Milk"], OWNER).quantity == 1

    def test_review_merge_mode_overrides_reconciler(self, inventory, stocked):
        review = ReviewList(
            location=Location.FRIDGE,
            items=[_review_item("Eggs", 4, item_id=stocked["Eggs"])],
            merge_mode=MergeMode.ADD,
        )
        ObservationReconciler().commit(review, OWNER, inventory)
        assert inventory.get_item(stocked["Eggs"], OWNER).quantity == 16

    def test_conservation(self, inventory, stocked):
        review = ReviewList(
            location=Location.FRIDGE,
            items=[
                _review_item("Eggs", 6, item_id=stocked["Eggs"]),
                _review_item("Milk", 0, item_id=stocked["Milk"]),
                _review_item("Kale", 0),
                _review_item("Ham", 1),
                _review_item("Ghost", 1, item_id=4242),
            ],
        )
        result = ObservationReconciler().commit(review, OWNER, inventory)
        assert (
            result.inserted + result.updated + result.deleted + result.skipped + result.failed
        ) == len(review.selected)


class TestCommitWithLedger:
    @pytest.fixture
    def ledger(self, tmp_path, inventory):
        now = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        undo_db = UndoDB(db_path=tmp_path / "test.db")
        yield UndoLedger(undo_db, inventory, clock=lambda: now)
        undo_db.close()

    def test_records_inserted_ids(self, inventory, stocked, ledger):
        review = ReviewList(
            location=Location.FRIDGE,
            items=[
                _review_item("Butter", 1),
                _review_item("Eggs", 6, item_id=stocked["Eggs"]),
            ],
        )
        result = ObservationReconciler().commit(
            review, OWNER, inventory, import_id="scan-1", ledger=ledger
        )
        assert result.undo_entry is not None
        assert result.undo_entry.inserted_ids == result.inserted_ids

    def test_nothing_inserted_records_nothing(self, inventory, stocked, ledger):
        review = ReviewList(
            location=Location.FRIDGE,
            items=[_review_item("Eggs", 6, item_id=stocked["Eggs"])],
        )
        result = ObservationReconciler().commit(
            review, OWNER, inventory, import_id="scan-2", ledger=ledger
        )
        assert result.undo_entry is None
        with pytest.raises(LookupError):
            ledger.get("scan-2", OWNER)

    def test_foreign_import_id_rejected_before_writes(self, inventory, ledger):
        ledger.record("shared", "someone-else", [1])
        review = ReviewList(location=Location.FRIDGE, items=[_review_item("Ham", 1)])
        with pytest.raises(Unauthorized):
            ObservationReconciler().commit(
                review, OWNER, inventory, import_id="shared", ledger=ledger
            )
        assert inventory.get_active_inventory(OWNER) == []

    def test_recorded_entry_is_undoable(self, inventory, ledger):
        review = ReviewList(location=Location.FRIDGE, items=[_review_item("Ham", 1)])
        result = ObservationReconciler().commit(
            review, OWNER, inventory, import_id="late", ledger=ledger
        )
        assert ledger.can_undo(result.undo_entry, result.undo_entry.created_at + timedelta(hours=1))
