"""
Inventory ledger coordinator

Consumption and inward records move stock. For each such insert the
coordinator, while holding the ``stockItems`` lock:

1. validates every referenced stock item (exists, enough quantity),
2. prices the event from the item's current weighted-average unit cost,
3. writes the updated stock items,
4. appends the event record carrying the captured cost figures.

Step 3 and step 4 are two separate file writes. If step 4 fails the stock
change stays in place and ``PartialLedgerFailure`` is raised and logged.
"""
from typing import Any, Callable, Dict, List, Tuple, Type

import pydantic

from messbook.core.exceptions import (
    InsufficientStock,
    ItemNotFound,
    PartialLedgerFailure,
    RecordNotFound,
    ValidationError,
)
from messbook.core.logging_config import get_logger
from messbook.schemas.ledger import (
    BarEntryCreate,
    DailyMessingEntryCreate,
    InwardLogCreate,
    SnackEntryCreate,
    StockItemCreate,
    StockItemUpdate,
)
from messbook.store.codec import Record, encode_value, parse_number
from messbook.store.collection import CollectionStore, Storage

logger = get_logger(__name__)

STOCK_COLLECTION = "stockItems"
DAILY_MESSING_COLLECTION = "dailyMessingEntries"
BAR_COLLECTION = "barEntries"
SNACKS_COLLECTION = "snacksAtBarEntries"
INWARD_COLLECTION = "inwardLog"

LEDGER_COLLECTIONS = (
    DAILY_MESSING_COLLECTION,
    BAR_COLLECTION,
    SNACKS_COLLECTION,
    INWARD_COLLECTION,
)

# Quantities are floats; differences below this are rounding noise
EPSILON = 1e-9

# (itemName, quantity, unitCost, cost)
PricedLine = Tuple[str, float, float, float]


def as_number(value: Any) -> float:
    """Numeric value of a stored field; blanks and junk count as 0."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return value
    if value is None:
        return 0
    number = parse_number(str(value))
    return number if number is not None else 0


def normalize_stock_item(item: Record) -> Record:
    """Force ``totalCost = currentQuantity * lastUnitCost`` and zero cost at zero quantity."""
    quantity = as_number(item.get("currentQuantity"))
    unit_cost = as_number(item.get("lastUnitCost"))
    if quantity <= EPSILON:
        unit_cost = 0
    item["currentQuantity"] = quantity
    item["lastUnitCost"] = unit_cost
    item["totalCost"] = quantity * unit_cost
    return item


def deduct_stock(item: Record, quantity: float) -> float:
    """Take ``quantity`` out of ``item`` in place; returns the cost of what was taken."""
    current = as_number(item.get("currentQuantity"))
    unit_cost = as_number(item.get("lastUnitCost"))
    cost = quantity * unit_cost

    new_quantity = current - quantity
    new_total = current * unit_cost - cost
    if new_quantity <= EPSILON:
        new_quantity = 0
        new_total = 0
        new_unit_cost = 0
    else:
        new_unit_cost = new_total / new_quantity

    item["currentQuantity"] = new_quantity
    item["totalCost"] = new_total
    item["lastUnitCost"] = new_unit_cost
    return cost


def add_stock(item: Record, quantity: float, unit_cost: float) -> None:
    """Receive ``quantity`` at ``unit_cost``; recomputes the weighted average."""
    current = as_number(item.get("currentQuantity"))
    current_total = current * as_number(item.get("lastUnitCost"))

    new_quantity = current + quantity
    new_total = current_total + quantity * unit_cost

    item["currentQuantity"] = new_quantity
    item["totalCost"] = new_total
    if new_quantity > EPSILON:
        item["lastUnitCost"] = new_total / new_quantity
    else:
        # Hand-edited negative stock; no cost is carried at or below zero
        normalize_stock_item(item)


def cost_per_member(total: float, members: List[Any]) -> float:
    return total / max(1, len(members))


def validate_fields(
    model: Type[pydantic.BaseModel], fields: Dict[str, Any], **dump_options
) -> Dict[str, Any]:
    """Run ``fields`` through ``model``; pydantic errors become ``ValidationError``."""
    if not isinstance(fields, dict):
        raise ValidationError("Record fields must be an object")
    try:
        parsed = model(**fields)
    except pydantic.ValidationError as e:
        problems = []
        first_field = None
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            first_field = first_field or location
            problems.append(f"{location}: {error['msg']}")
        raise ValidationError("; ".join(problems), field=first_field) from e
    return parsed.model_dump(**dump_options)


def item_name_key(value: Any) -> str:
    """
    Comparable form of an item name.

    A stored name that looks numeric decodes as a number (``"1.50"`` reads
    back as ``1.5``), so both sides are compared in canonical numeric form.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return encode_value(value)
    text = "" if value is None else str(value)
    number = parse_number(text)
    return encode_value(number) if number is not None else text


def _index_by_name(items: List[Record]) -> Dict[str, Record]:
    by_name = {}
    for item in items:
        by_name.setdefault(item_name_key(item.get("itemName")), item)
    return by_name


class LedgerCoordinator:
    """Stock-moving inserts and direct stock item edits."""

    def __init__(self, storage: Storage):
        self.storage = storage

    @property
    def stock(self) -> CollectionStore:
        return self.storage.collection(STOCK_COLLECTION)

    def record(self, collection: str, fields: Dict[str, Any]) -> Record:
        """Insert into a ledger-linked collection."""
        handlers: Dict[str, Callable[[Dict[str, Any]], Record]] = {
            DAILY_MESSING_COLLECTION: self.record_daily_messing,
            BAR_COLLECTION: self.record_bar_entry,
            SNACKS_COLLECTION: self.record_snack_entry,
            INWARD_COLLECTION: self.record_inward,
        }
        handler = handlers.get(collection)
        if handler is None:
            raise ValidationError(f"{collection} is not a ledger collection", field="collection")
        return handler(fields)

    # -- consumption -------------------------------------------------------

    def record_daily_messing(self, fields: Dict[str, Any]) -> Record:
        data = validate_fields(DailyMessingEntryCreate, fields, exclude_none=True)
        lines = [(item["itemName"], item["quantity"]) for item in data["consumedItems"]]

        def finish(priced: List[PricedLine]) -> Dict[str, Any]:
            consumed = []
            for item, (_, _, unit_cost, cost) in zip(data["consumedItems"], priced):
                consumed.append({**item, "unitCost": unit_cost, "cost": cost})
            total = sum(cost for _, _, _, cost in priced)
            return {
                **data,
                "consumedItems": consumed,
                "totalMealCost": total,
                "costPerMember": cost_per_member(total, data["membersPresent"]),
            }

        return self._consume(DAILY_MESSING_COLLECTION, lines, finish)

    def record_bar_entry(self, fields: Dict[str, Any]) -> Record:
        data = validate_fields(BarEntryCreate, fields, exclude_none=True)

        def finish(priced: List[PricedLine]) -> Dict[str, Any]:
            total = priced[0][3]
            return {
                **data,
                "totalCost": total,
                "costPerMember": cost_per_member(total, data["sharingMembers"]),
            }

        return self._consume(BAR_COLLECTION, [(data["wineType"], data["quantity"])], finish)

    def record_snack_entry(self, fields: Dict[str, Any]) -> Record:
        data = validate_fields(SnackEntryCreate, fields, exclude_none=True)

        def finish(priced: List[PricedLine]) -> Dict[str, Any]:
            total = priced[0][3]
            return {
                **data,
                "totalItemCost": total,
                "costPerMember": cost_per_member(total, data["sharingMembers"]),
            }

        return self._consume(SNACKS_COLLECTION, [(data["itemName"], data["quantity"])], finish)

    def _consume(
        self,
        collection: str,
        lines: List[Tuple[str, float]],
        finish: Callable[[List[PricedLine]], Dict[str, Any]],
    ) -> Record:
        stock = self.stock
        with stock.locked():
            items = stock.list()
            by_name = _index_by_name(items)

            # The same item may appear on several lines; check the sum
            requested: Dict[str, Tuple[str, float]] = {}
            for name, quantity in lines:
                key = item_name_key(name)
                requested[key] = (name, requested.get(key, (name, 0))[1] + quantity)
            for key, (name, quantity) in requested.items():
                item = by_name.get(key)
                if item is None:
                    raise ItemNotFound(name)
                available = as_number(item.get("currentQuantity"))
                if quantity > available + EPSILON:
                    logger.info(
                        "Rejected %s: %s requested %s, available %s",
                        collection, name, quantity, available,
                    )
                    raise InsufficientStock(name, quantity, available)

            priced: List[PricedLine] = []
            touched: List[str] = []
            for name, quantity in lines:
                item = by_name[item_name_key(name)]
                unit_cost = as_number(item.get("lastUnitCost"))
                cost = deduct_stock(item, quantity)
                priced.append((name, quantity, unit_cost, cost))
                if str(item.get("id")) not in touched:
                    touched.append(str(item.get("id")))

            stock.save_all(items)
            event = self._append_event(collection, finish(priced), touched)

        logger.info(
            "Recorded %s %s consuming %s",
            collection, event["id"], ", ".join(f"{n} x{q}" for n, q, _, _ in priced),
        )
        return event

    # -- replenishment -----------------------------------------------------

    def record_inward(self, fields: Dict[str, Any]) -> Record:
        data = validate_fields(InwardLogCreate, fields, exclude_none=True)
        name = data["itemName"]
        quantity = data["quantity"]
        unit_cost = data["unitCost"]

        stock = self.stock
        with stock.locked():
            item = _index_by_name(stock.list()).get(item_name_key(name))
            if item is not None:
                add_stock(item, quantity, unit_cost)
                changes = {
                    "currentQuantity": item["currentQuantity"],
                    "totalCost": item["totalCost"],
                    "lastUnitCost": item["lastUnitCost"],
                }
                if data.get("date"):
                    changes["lastReceivedDate"] = data["date"]
                if data.get("type"):
                    changes["type"] = data["type"]
                saved = stock.update_by_id(item["id"], changes)
            else:
                saved = stock.append({
                    "itemName": name,
                    "currentQuantity": quantity,
                    "unitOfMeasurement": data.get("unitOfMeasurement") or "units",
                    "lastUnitCost": unit_cost,
                    "lastReceivedDate": data.get("date", ""),
                    "totalCost": quantity * unit_cost,
                    "itemType": data.get("itemType") or "Issue",
                    "type": data.get("type") or "grocery",
                })
                logger.info("Created stock item %s (%s) from inward", name, saved["id"])

            event = self._append_event(
                INWARD_COLLECTION,
                {**data, "totalCost": quantity * unit_cost},
                [str(saved["id"])],
            )

        logger.info(
            "Recorded inward %s: %s x%s @ %s, stock now %s @ %s",
            event["id"], name, quantity, unit_cost,
            saved["currentQuantity"], saved["lastUnitCost"],
        )
        return event

    def _append_event(self, collection: str, fields: Dict[str, Any], stock_ids: List[str]) -> Record:
        try:
            return self.storage.collection(collection).append(fields)
        except Exception as e:
            logger.critical(
                "PARTIAL LEDGER FAILURE: stock items %s updated but %s entry not saved (%s); "
                "reconcile manually. Fields: %r",
                stock_ids, collection, e, fields,
            )
            raise PartialLedgerFailure(collection, stock_ids, str(e)) from e

    # -- direct stock edits ------------------------------------------------

    def add_stock_item(self, fields: Dict[str, Any]) -> Record:
        data = validate_fields(StockItemCreate, fields, exclude_none=True)
        stock = self.stock
        with stock.locked():
            if item_name_key(data["itemName"]) in _index_by_name(stock.list()):
                raise ValidationError(
                    f'Stock item "{data["itemName"]}" already exists', field="itemName"
                )
            return stock.append(normalize_stock_item(data))

    def update_stock_item(self, record_id: str, fields: Dict[str, Any]) -> Record:
        changes = validate_fields(StockItemUpdate, fields, exclude_unset=True)
        for required in ("itemName", "currentQuantity", "lastUnitCost"):
            if required in changes and changes[required] is None:
                raise ValidationError(f"{required} cannot be empty", field=required)

        stock = self.stock
        with stock.locked():
            items = stock.list()
            current = next((i for i in items if str(i.get("id")) == str(record_id)), None)
            if current is None:
                raise RecordNotFound(STOCK_COLLECTION, record_id)

            new_name = changes.get("itemName")
            if new_name is not None and item_name_key(new_name) != item_name_key(current.get("itemName")):
                if item_name_key(new_name) in _index_by_name(items):
                    raise ValidationError(f'Stock item "{new_name}" already exists', field="itemName")

            merged = normalize_stock_item({**current, **changes})
            for key in ("currentQuantity", "lastUnitCost", "totalCost"):
                changes[key] = merged[key]
            return stock.update_by_id(record_id, changes)

    def reconcile_stock(self, fix: bool = False, tolerance: float = 1e-6) -> List[Dict[str, Any]]:
        """
        Find stock items whose totals disagree with quantity x unit cost.

        With ``fix`` the offending items are normalized and written back.
        """
        stock = self.stock
        with stock.locked():
            items = stock.list()
            problems = []
            for item in items:
                expected = normalize_stock_item(dict(item))
                if (
                    abs(as_number(item.get("totalCost")) - expected["totalCost"]) > tolerance
                    or abs(as_number(item.get("lastUnitCost")) - expected["lastUnitCost"]) > tolerance
                ):
                    problems.append({
                        "id": item.get("id"),
                        "itemName": item.get("itemName"),
                        "currentQuantity": as_number(item.get("currentQuantity")),
                        "lastUnitCost": as_number(item.get("lastUnitCost")),
                        "totalCost": as_number(item.get("totalCost")),
                        "expectedTotalCost": expected["totalCost"],
                    })
                    if fix:
                        normalize_stock_item(item)
            if fix and problems:
                stock.save_all(items)
                logger.warning("Normalized %d stock items", len(problems))
        return problems

