"""
Tests for the ledger coordinator.

Covers weighted-average costing, consumption pricing, rejections that must
leave every file untouched, and the partial-failure path.
"""

import logging

import pytest

from messbook.core.exceptions import (
    InsufficientStock,
    ItemNotFound,
    PartialLedgerFailure,
    RecordNotFound,
    StorageIOError,
    ValidationError,
)
from messbook.services.ledger import (
    add_stock,
    cost_per_member,
    deduct_stock,
    item_name_key,
    normalize_stock_item,
)
from messbook.store.collection import CollectionStore


@pytest.fixture
def rice(add_stock_item):
    return add_stock_item("Rice", 10, 20)


def _snapshot(data_root):
    return {
        p.relative_to(data_root).as_posix(): p.read_bytes()
        for p in data_root.rglob("*") if p.is_file()
    }


# =============================================================================
# Pure stock arithmetic
# =============================================================================


class TestStockArithmetic:

    def test_deduct_keeps_unit_cost(self):
        item = {"currentQuantity": 10, "lastUnitCost": 20, "totalCost": 200}
        assert deduct_stock(item, 4) == 80
        assert item == {"currentQuantity": 6, "lastUnitCost": 20, "totalCost": 120}

    def test_deduct_to_zero_clears_costs(self):
        item = {"currentQuantity": 3, "lastUnitCost": 7.5, "totalCost": 22.5}
        assert deduct_stock(item, 3) == 22.5
        assert item == {"currentQuantity": 0, "lastUnitCost": 0, "totalCost": 0}

    def test_deduct_ignores_stale_total(self):
        item = {"currentQuantity": 10, "lastUnitCost": 20, "totalCost": 999}
        deduct_stock(item, 5)
        assert item["totalCost"] == 100

    def test_add_weighted_average(self):
        item = {"currentQuantity": 6, "lastUnitCost": 20, "totalCost": 120}
        add_stock(item, 5, 26)
        assert item["currentQuantity"] == 11
        assert item["totalCost"] == 250
        assert item["lastUnitCost"] == pytest.approx(250 / 11)

    def test_add_to_empty_item(self):
        item = {"currentQuantity": 0, "lastUnitCost": 0, "totalCost": 0}
        add_stock(item, 4, 12.5)
        assert item == {"currentQuantity": 4, "lastUnitCost": 12.5, "totalCost": 50}

    def test_add_reads_blank_fields_as_zero(self):
        item = {"currentQuantity": "", "lastUnitCost": ""}
        add_stock(item, 2, 3)
        assert item["totalCost"] == 6

    def test_add_to_negative_stock_keeps_total_consistent(self):
        item = {"currentQuantity": -5, "lastUnitCost": 20, "totalCost": -100}
        add_stock(item, 2, 30)
        assert item["currentQuantity"] == -3
        assert item["lastUnitCost"] == 0
        assert item["totalCost"] == item["currentQuantity"] * item["lastUnitCost"]

    def test_add_back_to_positive_from_negative(self):
        item = {"currentQuantity": -2, "lastUnitCost": 0}
        add_stock(item, 4, 10)
        assert item["currentQuantity"] == 2
        assert item["totalCost"] == 40
        assert item["lastUnitCost"] == 20

    def test_normalize(self):
        assert normalize_stock_item({"currentQuantity": 0, "lastUnitCost": 9})["lastUnitCost"] == 0
        assert normalize_stock_item({"currentQuantity": "4", "lastUnitCost": 2.5})["totalCost"] == 10

    @pytest.mark.parametrize("members, expected", [
        (["M1", "M2"], 40),
        (["M1"], 80),
        ([], 80),
    ])
    def test_cost_per_member(self, members, expected):
        assert cost_per_member(80, members) == expected


# =============================================================================
# Consumption
# =============================================================================


class TestDailyMessing:

    def test_prices_and_deducts(self, ledger, rice, stock_by_name):
        entry = ledger.record_daily_messing({
            "date": "2024-03-05",
            "mealType": "Lunch",
            "consumedItems": [{"itemName": "Rice", "quantity": 4}],
            "membersPresent": ["M1", "M2"],
        })

        assert entry["totalMealCost"] == 80
        assert entry["costPerMember"] == 40
        assert entry["consumedItems"] == [
            {"itemName": "Rice", "quantity": 4, "unitCost": 20, "cost": 80},
        ]
        assert entry["mealType"] == "Lunch"

        stock = stock_by_name()["Rice"]
        assert stock["currentQuantity"] == 6
        assert stock["totalCost"] == 120
        assert stock["lastUnitCost"] == 20

    def test_entry_persisted(self, ledger, rice, storage):
        entry = ledger.record_daily_messing({
            "consumedItems": [{"itemName": "Rice", "quantity": 1}], "membersPresent": ["M1"],
        })
        stored = storage.collection("dailyMessingEntries").list()
        assert stored == [entry]

    def test_several_items_one_stock_write(self, ledger, add_stock_item, stock_by_name, monkeypatch):
        add_stock_item("Rice", 10, 20)
        add_stock_item("Dal", 5, 90)

        saves = []
        original = CollectionStore.save_all

        def counting_save_all(self, records):
            saves.append(self.name)
            return original(self, records)

        monkeypatch.setattr(CollectionStore, "save_all", counting_save_all)

        entry = ledger.record_daily_messing({
            "consumedItems": [
                {"itemName": "Rice", "quantity": 2},
                {"itemName": "Dal", "quantity": 0.5},
            ],
            "membersPresent": ["M1", "M2", "M3"],
        })

        assert saves == ["stockItems"]
        assert entry["totalMealCost"] == pytest.approx(40 + 45)
        assert entry["costPerMember"] == pytest.approx(85 / 3)
        stock = stock_by_name()
        assert stock["Rice"]["currentQuantity"] == 8
        assert stock["Dal"]["currentQuantity"] == 4.5

    def test_repeated_item_checked_as_sum(self, ledger, rice, data_root):
        before = _snapshot(data_root)
        with pytest.raises(InsufficientStock) as exc_info:
            ledger.record_daily_messing({
                "consumedItems": [
                    {"itemName": "Rice", "quantity": 6},
                    {"itemName": "Rice", "quantity": 6},
                ],
            })
        assert exc_info.value.requested == 12
        assert exc_info.value.available == 10
        assert _snapshot(data_root) == before

    def test_repeated_item_deducted_per_line(self, ledger, rice, stock_by_name):
        entry = ledger.record_daily_messing({
            "consumedItems": [
                {"itemName": "Rice", "quantity": 3},
                {"itemName": "Rice", "quantity": 2},
            ],
            "membersPresent": ["M1"],
        })
        assert [line["cost"] for line in entry["consumedItems"]] == [60, 40]
        assert stock_by_name()["Rice"]["currentQuantity"] == 5

    def test_unknown_item_aborts_whole_entry(self, ledger, rice, data_root):
        before = _snapshot(data_root)
        with pytest.raises(ItemNotFound) as exc_info:
            ledger.record_daily_messing({
                "consumedItems": [
                    {"itemName": "Rice", "quantity": 1},
                    {"itemName": "Saffron", "quantity": 1},
                ],
            })
        assert exc_info.value.item_name == "Saffron"
        assert _snapshot(data_root) == before

    @pytest.mark.parametrize("fields", [
        {},
        {"consumedItems": []},
        {"consumedItems": [{"itemName": "Rice"}]},
        {"consumedItems": [{"itemName": "Rice", "quantity": 0}]},
        {"consumedItems": [{"itemName": "Rice", "quantity": -1}]},
        {"consumedItems": [{"itemName": "", "quantity": 1}]},
        {"consumedItems": "Rice"},
    ])
    def test_malformed_rejected_before_io(self, ledger, rice, data_root, fields):
        before = _snapshot(data_root)
        with pytest.raises(ValidationError):
            ledger.record_daily_messing(fields)
        assert _snapshot(data_root) == before


class TestBarAndSnacks:

    def test_bar_entry(self, ledger, add_stock_item, stock_by_name):
        add_stock_item("Whisky", 10, 100, type="Liquor Inward")
        entry = ledger.record_bar_entry({
            "date": "2024-03-06", "wineType": "Whisky", "quantity": 2, "sharingMembers": ["M1", "M2"],
        })
        assert entry["totalCost"] == 200
        assert entry["costPerMember"] == 100
        assert stock_by_name()["Whisky"]["currentQuantity"] == 8

    def test_bar_entry_without_members(self, ledger, add_stock_item):
        add_stock_item("Whisky", 10, 100)
        entry = ledger.record_bar_entry({"wineType": "Whisky", "quantity": 1})
        assert entry["costPerMember"] == 100

    def test_snack_entry(self, ledger, add_stock_item, stock_by_name):
        add_stock_item("Chips", 20, 10)
        entry = ledger.record_snack_entry({
            "itemName": "Chips", "quantity": 3, "sharingMembers": ["M2", "M3"],
        })
        assert entry["totalItemCost"] == 30
        assert entry["costPerMember"] == 15
        assert stock_by_name()["Chips"]["currentQuantity"] == 17

    def test_exact_remaining_quantity_allowed(self, ledger, rice, stock_by_name):
        ledger.record_bar_entry({"wineType": "Rice", "quantity": 10})
        stock = stock_by_name()["Rice"]
        assert stock["currentQuantity"] == 0
        assert stock["lastUnitCost"] == 0
        assert stock["totalCost"] == 0

    def test_insufficient_leaves_files_untouched(self, ledger, rice, data_root):
        before = _snapshot(data_root)
        with pytest.raises(InsufficientStock) as exc_info:
            ledger.record_bar_entry({"wineType": "Rice", "quantity": 10.5})
        assert exc_info.value.item_name == "Rice"
        assert "Rice" in exc_info.value.message
        assert _snapshot(data_root) == before
        assert not (data_root / "barEntries").exists()

    def test_fractional_quantities_drain_cleanly(self, ledger, add_stock_item, stock_by_name):
        add_stock_item("Gin", 0.3, 50)
        for _ in range(3):
            ledger.record_bar_entry({"wineType": "Gin", "quantity": 0.1})
        gin = stock_by_name()["Gin"]
        assert gin["currentQuantity"] == 0
        assert gin["totalCost"] == 0

    def test_record_dispatch(self, ledger, rice):
        entry = ledger.record("snacksAtBarEntries", {"itemName": "Rice", "quantity": 1})
        assert entry["totalItemCost"] == 20

    def test_record_rejects_other_collections(self, ledger):
        with pytest.raises(ValidationError):
            ledger.record("messMembers", {"name": "Alice"})


# =============================================================================
# Inward
# =============================================================================


class TestInward:

    def test_existing_item_weighted_average(self, ledger, rice, stock_by_name):
        ledger.record_daily_messing({"consumedItems": [{"itemName": "Rice", "quantity": 4}]})

        entry = ledger.record_inward({
            "date": "2024-03-10", "itemName": "Rice", "quantity": 5, "unitCost": 26,
        })

        assert entry["totalCost"] == 130
        stock = stock_by_name()["Rice"]
        assert stock["currentQuantity"] == 11
        assert stock["totalCost"] == 250
        assert stock["lastUnitCost"] == pytest.approx(22.727272, rel=1e-6)
        assert stock["lastReceivedDate"] == "2024-03-10"
        assert stock["id"] == rice["id"]

    def test_new_item_defaults(self, ledger, stock_by_name):
        ledger.record_inward({"date": "2024-03-01", "itemName": "Ghee", "quantity": 2, "unitCost": 600})
        ghee = stock_by_name()["Ghee"]
        assert ghee["currentQuantity"] == 2
        assert ghee["lastUnitCost"] == 600
        assert ghee["totalCost"] == 1200
        assert ghee["unitOfMeasurement"] == "units"
        assert ghee["itemType"] == "Issue"
        assert ghee["type"] == "grocery"
        assert ghee["lastReceivedDate"] == "2024-03-01"

    def test_new_item_keeps_given_tags(self, ledger, stock_by_name):
        ledger.record_inward({
            "itemName": "Rum", "quantity": 6, "unitCost": 400,
            "unitOfMeasurement": "bottles", "itemType": "Bar", "type": "Liquor Inward",
        })
        rum = stock_by_name()["Rum"]
        assert rum["unitOfMeasurement"] == "bottles"
        assert rum["type"] == "Liquor Inward"

    def test_inward_updates_type_tag(self, ledger, rice, stock_by_name):
        ledger.record_inward({"itemName": "Rice", "quantity": 1, "unitCost": 20, "type": "ration"})
        assert stock_by_name()["Rice"]["type"] == "ration"

    def test_inward_into_empty_item(self, ledger, rice, stock_by_name):
        ledger.record_bar_entry({"wineType": "Rice", "quantity": 10})
        ledger.record_inward({"itemName": "Rice", "quantity": 4, "unitCost": 30})
        stock = stock_by_name()["Rice"]
        assert stock["lastUnitCost"] == 30
        assert stock["totalCost"] == 120

    def test_captured_cost_not_repriced(self, ledger, rice, storage):
        entry = ledger.record_bar_entry({"wineType": "Rice", "quantity": 2})
        ledger.record_inward({"itemName": "Rice", "quantity": 8, "unitCost": 50})
        stored = storage.collection("barEntries").get(entry["id"])
        assert stored["totalCost"] == 40

    @pytest.mark.parametrize("fields", [
        {"itemName": "Rice", "quantity": 5},
        {"itemName": "Rice", "quantity": 0, "unitCost": 5},
        {"itemName": "Rice", "quantity": 5, "unitCost": -1},
        {"quantity": 5, "unitCost": 5},
        {"itemName": "Rice", "quantity": 5, "unitCost": float("inf")},
        {"itemName": "Rice", "quantity": float("nan"), "unitCost": 5},
    ])
    def test_malformed_rejected(self, ledger, rice, data_root, fields):
        before = _snapshot(data_root)
        with pytest.raises(ValidationError):
            ledger.record_inward(fields)
        assert _snapshot(data_root) == before


# =============================================================================
# Partial failure
# =============================================================================


class TestPartialFailure:

    @pytest.fixture
    def failing_event_append(self, monkeypatch):
        original = CollectionStore.append

        def append(self, fields):
            if self.name != "stockItems":
                raise StorageIOError(self.name, "disk full")
            return original(self, fields)

        monkeypatch.setattr(CollectionStore, "append", append)

    def test_stock_kept_event_missing(self, ledger, rice, stock_by_name, storage, failing_event_append, caplog):
        with caplog.at_level(logging.CRITICAL, logger="messbook.services.ledger"):
            with pytest.raises(PartialLedgerFailure) as exc_info:
                ledger.record_bar_entry({"wineType": "Rice", "quantity": 3})

        assert exc_info.value.stock_ids == [str(rice["id"])]
        assert exc_info.value.collection == "barEntries"
        assert stock_by_name()["Rice"]["currentQuantity"] == 7
        assert storage.collection("barEntries").list() == []
        assert any("PARTIAL LEDGER FAILURE" in r.getMessage() for r in caplog.records)

    def test_inward_partial_failure(self, ledger, rice, stock_by_name, failing_event_append):
        with pytest.raises(PartialLedgerFailure):
            ledger.record_inward({"itemName": "Rice", "quantity": 5, "unitCost": 20})
        assert stock_by_name()["Rice"]["currentQuantity"] == 15


# =============================================================================
# Direct stock item edits
# =============================================================================


class TestStockItemEdits:

    def test_add_computes_total(self, rice):
        assert rice["totalCost"] == 200

    def test_add_duplicate_name_rejected(self, ledger, rice):
        with pytest.raises(ValidationError) as exc_info:
            ledger.add_stock_item({"itemName": "Rice", "currentQuantity": 1, "lastUnitCost": 1})
        assert exc_info.value.field == "itemName"

    def test_add_zero_quantity_zero_cost(self, ledger):
        item = ledger.add_stock_item({"itemName": "Salt", "currentQuantity": 0, "lastUnitCost": 15})
        assert item["lastUnitCost"] == 0
        assert item["totalCost"] == 0

    def test_update_recomputes_total(self, ledger, rice, stock_by_name):
        ledger.update_stock_item(rice["id"], {"currentQuantity": 12, "totalCost": 1})
        stock = stock_by_name()["Rice"]
        assert stock["currentQuantity"] == 12
        assert stock["totalCost"] == 240

    def test_update_keeps_unrelated_fields(self, ledger, rice, stock_by_name):
        ledger.update_stock_item(rice["id"], {"unitOfMeasurement": "bags"})
        stock = stock_by_name()["Rice"]
        assert stock["unitOfMeasurement"] == "bags"
        assert stock["currentQuantity"] == 10
        assert stock["totalCost"] == 200

    def test_update_rename_collision(self, ledger, rice, add_stock_item):
        dal = add_stock_item("Dal", 1, 90)
        with pytest.raises(ValidationError):
            ledger.update_stock_item(dal["id"], {"itemName": "Rice"})

    def test_update_unknown(self, ledger, rice):
        with pytest.raises(RecordNotFound):
            ledger.update_stock_item("missing", {"currentQuantity": 1})

    def test_update_cannot_blank_quantity(self, ledger, rice):
        with pytest.raises(ValidationError):
            ledger.update_stock_item(rice["id"], {"currentQuantity": None})

    def test_infinite_numbers_rejected(self, ledger, rice, data_root):
        before = _snapshot(data_root)
        with pytest.raises(ValidationError):
            ledger.add_stock_item({"itemName": "Oil", "currentQuantity": float("inf"), "lastUnitCost": 1})
        with pytest.raises(ValidationError):
            ledger.update_stock_item(rice["id"], {"lastUnitCost": float("nan")})
        assert _snapshot(data_root) == before


# =============================================================================
# Item names that look numeric
# =============================================================================


class TestNumericLookingNames:

    @pytest.fixture
    def numbered(self, add_stock_item):
        return add_stock_item("1.50", 10, 20)

    @pytest.mark.parametrize("stored, requested", [
        ("1.50", "1.5"),
        (1.5, "1.50"),
        ("Rice", "Rice"),
        ("007", "7"),
    ])
    def test_name_key_matches(self, stored, requested):
        assert item_name_key(stored) == item_name_key(requested)

    def test_name_key_keeps_text(self):
        assert item_name_key("1e") == "1e"
        assert item_name_key(None) == ""

    def test_consumption_finds_item(self, ledger, numbered, storage):
        entry = ledger.record_bar_entry({"wineType": "1.50", "quantity": 2})
        assert entry["totalCost"] == 40
        assert storage.collection("stockItems").list()[0]["currentQuantity"] == 8

    def test_inward_updates_existing_item(self, ledger, numbered, storage):
        ledger.record_inward({"itemName": "1.50", "quantity": 10, "unitCost": 40})
        items = storage.collection("stockItems").list()
        assert len(items) == 1
        assert items[0]["currentQuantity"] == 20
        assert items[0]["lastUnitCost"] == 30

    def test_duplicate_rejected(self, ledger, numbered):
        with pytest.raises(ValidationError):
            ledger.add_stock_item({"itemName": "1.5", "currentQuantity": 1, "lastUnitCost": 1})


class TestReconcile:

    def test_detects_and_fixes(self, ledger, rice, storage, stock_by_name):
        storage.collection("stockItems").update_by_id(rice["id"], {"totalCost": 500})

        problems = ledger.reconcile_stock()
        assert [p["itemName"] for p in problems] == ["Rice"]
        assert problems[0]["expectedTotalCost"] == 200
        assert stock_by_name()["Rice"]["totalCost"] == 500

        assert len(ledger.reconcile_stock(fix=True)) == 1
        assert stock_by_name()["Rice"]["totalCost"] == 200
        assert ledger.reconcile_stock() == []

    def test_clean_stock(self, ledger, rice):
        assert ledger.reconcile_stock() == []
