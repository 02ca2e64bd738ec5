"""End-to-end tests for PantryService."""

from datetime import date, datetime, timedelta, timezone

import pytest

from larder.config import DatabaseConfig, LarderConfig, StaplesConfig
from larder.errors import NotFound, Stale, Unauthorized, ValidationError
from larder.models import (
    Location,
    ObservedItem,
    ReceiptCategory,
    ReceiptLine,
    StapleFilter,
)
from larder.service import PantryService

OWNER = "household-1"
T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self):
        self.now = T0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def service(tmp_path, clock):
    config = LarderConfig(database=DatabaseConfig(path=str(tmp_path / "larder.db")))
    with PantryService(config, clock=clock) as svc:
        yield svc


def _groceries():
    return [
        ReceiptLine(name="Milk", category=ReceiptCategory.DAIRY, price=1.2),
        ReceiptLine(name="Bananas", quantity=6, category=ReceiptCategory.PRODUCE),
        ReceiptLine(name="Peas", category=ReceiptCategory.FROZEN),
    ]


class TestScanFlow:
    def test_reconcile_and_commit(self, service):
        service.commit(
            service.reconcile([ObservedItem(name="Yogurt", quantity=2)], "fridge", OWNER),
            OWNER,
        )

        review = service.reconcile(
            [ObservedItem(name="Eggs", quantity=12, confidence=0.9)], Location.FRIDGE, OWNER
        )
        assert [i.name for i in review.carried_over] == ["Yogurt"]

        result = service.commit(review, OWNER, import_id="scan-1")

        assert (result.inserted, result.deleted) == (1, 1)
        assert [i.name for i in service.inventory(OWNER)] == ["Eggs"]

    def test_other_locations_untouched(self, service):
        service.commit(
            service.reconcile([ObservedItem(name="Rice")], "pantry", OWNER), OWNER
        )
        review = service.reconcile([], "fridge", OWNER)
        assert review.items == []
        assert len(service.inventory(OWNER, "pantry")) == 1

    def test_invalid_location(self, service):
        with pytest.raises(ValidationError, match="garage"):
            service.reconcile([], "garage", OWNER)

    def test_remove_item(self, service):
        service.commit(
            service.reconcile([ObservedItem(name="Ham")], "fridge", OWNER), OWNER
        )
        [ham] = service.inventory(OWNER)
        service.remove_item(ham.id, OWNER, "spoiled")
        assert service.inventory(OWNER) == []
        item = service.inventory_db.get_item(ham.id, OWNER)
        assert item.waste_reason == "spoiled"

        with pytest.raises(NotFound):
            service.remove_item(ham.id, OWNER, "eaten")
        with pytest.raises(ValidationError):
            service.remove_item(ham.id, OWNER, "lost")


class TestReceiptFlow:
    def test_import_receipt_and_undo(self, service, clock):
        review = service.import_receipt(OWNER, "R001", date(2025, 3, 1), _groceries())

        assert review.location is None
        assert review.carried_over == []
        assert {i.location for i in review.items} == {
            Location.FRIDGE,
            Location.FREEZER,
        }

        result = service.commit(review, OWNER, import_id="R001")
        assert result.inserted == 3
        [status] = service.import_status(OWNER)
        assert (status.import_id, status.remaining, status.can_undo) == ("R001", 3, True)

        clock.now += timedelta(hours=23)
        undone = service.undo_import("R001", OWNER)
        assert undone.deleted_count == 3
        assert service.inventory(OWNER) == []

    def test_receipt_adds_to_existing_stock(self, service):
        service.commit(
            service.reconcile([ObservedItem(name="Milk", quantity=1)], "fridge", OWNER),
            OWNER,
        )
        review = service.import_receipt(OWNER, "R002", date(2025, 3, 1), _groceries())
        result = service.commit(review, OWNER, import_id="R002")

        assert (result.inserted, result.updated) == (2, 1)
        milk = next(i for i in service.inventory(OWNER) if i.name == "Milk")
        assert milk.quantity == 2

        service.undo_import("R002", OWNER)
        assert [i.name for i in service.inventory(OWNER)] == ["Milk"]

    def test_zero_quantity_line_keeps_matched_stock(self, service):
        service.commit(
            service.reconcile([ObservedItem(name="Milk", quantity=2)], "fridge", OWNER),
            OWNER,
        )
        lines = [ReceiptLine(name="Milk", quantity=0, category=ReceiptCategory.DAIRY)]
        review = service.import_receipt(OWNER, "r1", date(2025, 3, 1), lines)
        result = service.commit(review, OWNER, import_id="r1")

        assert (result.skipped, result.deleted) == (1, 0)
        [milk] = service.inventory(OWNER, "fridge")
        assert (milk.name, milk.quantity) == ("Milk", 2)

    def test_undo_after_window(self, service, clock):
        review = service.import_receipt(OWNER, "R003", date(2025, 3, 1), _groceries())
        service.commit(review, OWNER, import_id="R003")
        clock.now += timedelta(hours=25)
        with pytest.raises(Stale):
            service.undo_import("R003", OWNER)

    def test_receipt_of_other_owner(self, service):
        service.record_receipt(OWNER, "R004", date(2025, 3, 1), _groceries())
        with pytest.raises(Unauthorized):
            service.record_receipt("intruder", "R004", date(2025, 3, 2), _groceries())

    def test_record_receipt_requires_id(self, service):
        with pytest.raises(ValidationError):
            service.record_receipt(OWNER, "", date(2025, 3, 1), _groceries())

    def test_undo_unknown(self, service):
        with pytest.raises(NotFound):
            service.undo_import("missing", OWNER)


class TestStapleFlow:
    def _record_weeks(self, service, weeks):
        for week in range(weeks):
            service.record_receipt(
                OWNER,
                f"W{week}",
                date(2025, 1, 6) + timedelta(weeks=week),
                [ReceiptLine(name="Bananas", category=ReceiptCategory.PRODUCE)]
                + ([ReceiptLine(name="Saffron")] if week == 0 else []),
            )

    def test_analyze_and_list(self, service):
        self._record_weeks(service, 3)

        result = service.analyze_staples(OWNER)

        assert result.receipts_analyzed == 3
        assert (result.items_found, result.staples_identified) == (2, 1)
        summary = service.list_staples(OWNER)
        assert (summary.total, summary.staple_count, summary.unclassified_count) == (2, 1, 1)
        banana = summary.staples[0]
        assert banana.avg_purchase_frequency_days == 7
        assert [r.name for r in service.list_staples(OWNER, "staples").staples] == ["Bananas"]

    def test_rerecording_receipt_does_not_double_count(self, service):
        self._record_weeks(service, 2)
        self._record_weeks(service, 2)
        service.analyze_staples(OWNER)
        banana = service.list_staples(OWNER).staples[0]
        assert banana.purchase_count == 2

    def test_override_and_clear(self, service):
        self._record_weeks(service, 3)
        service.analyze_staples(OWNER)
        banana = service.list_staples(OWNER, StapleFilter.STAPLES).staples[0]

        record = service.classify_override(banana.id, OWNER, is_occasional=True)
        assert record.classification == "occasional"
        assert service.list_staples(OWNER).occasional_count == 1

        with pytest.raises(ValidationError):
            service.classify_override(banana.id, OWNER, is_staple=True, is_occasional=True)
        with pytest.raises(NotFound):
            service.classify_override(banana.id, "intruder", is_staple=True)

        assert service.clear_staples(OWNER) == 2
        assert service.list_staples(OWNER).total == 0

    def test_sticky_overrides_from_config(self, tmp_path):
        config = LarderConfig(
            database=DatabaseConfig(path=str(tmp_path / "sticky.db")),
            staples=StaplesConfig(sticky_overrides=True),
        )
        with PantryService(config) as service:
            self._record_weeks(service, 3)
            service.analyze_staples(OWNER)
            banana = service.list_staples(OWNER, "staples").staples[0]
            service.classify_override(banana.id, OWNER, is_staple=False)

            service.analyze_staples(OWNER)

            assert service.list_staples(OWNER, "staples").total == 0

    def test_preferences_kept_across_analysis(self, service):
        self._record_weeks(service, 3)
        service.analyze_staples(OWNER)
        banana = service.list_staples(OWNER, "staples").staples[0]

        service.classify_override(
            banana.id, OWNER, never_suggest_alternative=True, notes="organic"
        )
        self._record_weeks(service, 4)
        service.analyze_staples(OWNER)

        banana = service.list_staples(OWNER, "staples").staples[0]
        assert banana.purchase_count == 4
        assert (banana.never_suggest_alternative, banana.notes) == (True, "organic")

    def test_invalid_staple_filter(self, service):
        with pytest.raises(ValidationError, match="bogus"):
            service.list_staples(OWNER, "bogus")
