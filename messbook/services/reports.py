"""
Monthly member charges, monthly ledger and stock summary, computed from
stored records.

Charges and ledger amounts use the cost captured on each entry when it
was recorded; they are never re-priced from today's stock cost.
"""
from typing import Any, Dict, List, Optional

from messbook.schemas.statistics import (
    ChargeLine,
    ChargeTotals,
    LedgerDay,
    LedgerLine,
    LedgerTotals,
    MemberCharge,
    MemberChargesResponse,
    MonthlyLedgerResponse,
    StockSummaryItem,
    StockSummaryResponse,
)
from messbook.services.facade import AccessFacade, RecordFilter
from messbook.services.ledger import (
    BAR_COLLECTION,
    DAILY_MESSING_COLLECTION,
    INWARD_COLLECTION,
    SNACKS_COLLECTION,
    STOCK_COLLECTION,
    as_number,
    item_name_key,
)
from messbook.store.codec import Record, encode_value

MEMBERS_COLLECTION = "messMembers"
MIN_STOCK_COLLECTION = "minStockLevels"


def _records(facade: AccessFacade, collection: str, record_filter: Optional[RecordFilter] = None) -> List[Record]:
    result = facade.list(collection, record_filter)
    if not result.ok:
        raise result.error
    return result.data


def _member_ids(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    if value in (None, ""):
        return []
    return [str(value)]


def _in_month(record: Record, prefix: str) -> bool:
    return str(record.get("date") or "")[:7] == prefix


def member_charges(facade: AccessFacade, year: int, month: int) -> MemberChargesResponse:
    """Split every messing, bar and snack entry of the month among its members."""
    prefix = f"{year:04d}-{month:02d}"

    charges: Dict[str, MemberCharge] = {}
    for member in _records(facade, MEMBERS_COLLECTION):
        member_id = str(member.get("memberId") or member.get("id"))
        charges[member_id] = MemberCharge(memberId=member_id, name=member.get("name") or None)

    def charge(member_id: str) -> MemberCharge:
        if member_id not in charges:
            charges[member_id] = MemberCharge(memberId=member_id)
        return charges[member_id]

    for entry in _records(facade, DAILY_MESSING_COLLECTION):
        if not _in_month(entry, prefix):
            continue
        members = _member_ids(entry.get("membersPresent"))
        if not members:
            continue
        if "costPerMember" in entry and entry["costPerMember"] != "":
            share = as_number(entry["costPerMember"])
        else:
            share = as_number(entry.get("totalMealCost")) / len(members)
        items = entry.get("consumedItems") if isinstance(entry.get("consumedItems"), list) else []
        for member_id in members:
            c = charge(member_id)
            c.messingCost += share
            for item in items:
                if not isinstance(item, dict):
                    continue
                c.consumedItems.append(ChargeLine(
                    itemName=str(item.get("itemName", "")),
                    quantity=as_number(item.get("quantity")) / len(members),
                    cost=as_number(item.get("cost")) / len(members),
                    source="messing",
                    date=str(entry.get("date")),
                ))

    for collection, name_field, cost_field, source in (
        (BAR_COLLECTION, "wineType", "totalCost", "bar"),
        (SNACKS_COLLECTION, "itemName", "totalItemCost", "snacks"),
    ):
        for entry in _records(facade, collection):
            if not _in_month(entry, prefix):
                continue
            members = _member_ids(entry.get("sharingMembers"))
            if not members:
                continue
            share = as_number(entry.get(cost_field)) / len(members)
            for member_id in members:
                c = charge(member_id)
                if source == "bar":
                    c.barCost += share
                else:
                    c.snacksCost += share
                c.consumedItems.append(ChargeLine(
                    itemName=str(entry.get(name_field, "")),
                    quantity=as_number(entry.get("quantity")) / len(members),
                    cost=share,
                    source=source,
                    date=str(entry.get("date")),
                ))

    totals = ChargeTotals()
    members_out = []
    for c in charges.values():
        c.totalCharge = c.messingCost + c.barCost + c.snacksCost
        if c.totalCharge <= 0:
            continue
        totals.messing += c.messingCost
        totals.bar += c.barCost
        totals.snacks += c.snacksCost
        members_out.append(c)
    totals.grand = totals.messing + totals.bar + totals.snacks
    members_out.sort(key=lambda c: c.totalCharge, reverse=True)

    return MemberChargesResponse(year=year, month=month, members=members_out, totals=totals)


def _quantity_text(value: Any) -> str:
    return encode_value(as_number(value))


def monthly_ledger(facade: AccessFacade, year: int, month: int) -> MonthlyLedgerResponse:
    """Inward, messing, bar and snack entries of the month grouped by day."""
    prefix = f"{year:04d}-{month:02d}"

    names: Dict[str, str] = {}
    for member in _records(facade, MEMBERS_COLLECTION):
        if member.get("name"):
            names[str(member.get("memberId") or member.get("id"))] = str(member["name"])

    def members_text(entry: Record, field: str) -> Optional[str]:
        ids = _member_ids(entry.get(field))
        if not ids:
            return None
        return "Members: " + ", ".join(names.get(i, i) for i in ids)

    lines: List[LedgerLine] = []

    def add(entry: Record, source: str, type_: str, description: str, details: Optional[str], amount: Any):
        lines.append(LedgerLine(
            id=str(entry.get("id")),
            date=str(entry.get("date")),
            source=source,
            type=type_,
            description=description,
            details=details,
            amount=as_number(amount),
        ))

    for entry in _records(facade, INWARD_COLLECTION):
        if _in_month(entry, prefix):
            add(
                entry, "inward", str(entry.get("type") or "Inward Log"),
                f"{_quantity_text(entry.get('quantity'))} units of {entry.get('itemName')}",
                f"Cost: {_quantity_text(entry.get('unitCost'))}/unit",
                entry.get("totalCost"),
            )

    for entry in _records(facade, DAILY_MESSING_COLLECTION):
        if _in_month(entry, prefix):
            items = entry.get("consumedItems")
            meal = entry.get("mealType")
            add(
                entry, "messing", f"Messing ({meal})" if meal else "Messing",
                f"{len(items) if isinstance(items, list) else 0} items consumed",
                members_text(entry, "membersPresent"),
                entry.get("totalMealCost"),
            )

    for entry in _records(facade, BAR_COLLECTION):
        if _in_month(entry, prefix):
            add(
                entry, "bar", "Bar Counter",
                f"{_quantity_text(entry.get('quantity'))} units of {entry.get('wineType')}",
                members_text(entry, "sharingMembers"),
                entry.get("totalCost"),
            )

    for entry in _records(facade, SNACKS_COLLECTION):
        if _in_month(entry, prefix):
            add(
                entry, "snacks", "Snacks at Bar",
                f"{_quantity_text(entry.get('quantity'))} units of {entry.get('itemName')}",
                members_text(entry, "sharingMembers"),
                entry.get("totalItemCost"),
            )

    # Stable sort: entries of the same day keep inward, messing, bar, snacks order
    lines.sort(key=lambda line: line.date)

    days: List[LedgerDay] = []
    totals = LedgerTotals()
    for line in lines:
        day = line.date[:10]
        if not days or days[-1].date != day:
            days.append(LedgerDay(date=day, entries=[], total=0))
        days[-1].entries.append(line)
        days[-1].total += line.amount
        setattr(totals, line.source, getattr(totals, line.source) + line.amount)

    return MonthlyLedgerResponse(year=year, month=month, days=days, totals=totals)


def stock_summary(
    facade: AccessFacade,
    type_tag: Optional[str] = None,
    item_type: Optional[str] = None,
) -> StockSummaryResponse:
    """
    Stock items with their value and low-stock flag.

    ``type_tag`` and ``item_type`` are matched literally; classification
    values are not interpreted.
    """
    equals = {}
    if type_tag:
        equals["type"] = type_tag
    if item_type:
        equals["itemType"] = item_type
    items = _records(facade, STOCK_COLLECTION, RecordFilter(equals=equals))

    minimums: Dict[str, float] = {}
    for level in _records(facade, MIN_STOCK_COLLECTION):
        if level.get("minQuantity") not in (None, ""):
            minimums[item_name_key(level.get("itemName"))] = as_number(level.get("minQuantity"))

    out = []
    for item in sorted(items, key=lambda i: str(i.get("itemName", "")).lower()):
        name = str(item.get("itemName", ""))
        quantity = as_number(item.get("currentQuantity"))
        unit_cost = as_number(item.get("lastUnitCost"))
        minimum = minimums.get(item_name_key(item.get("itemName")))
        out.append(StockSummaryItem(
            id=str(item.get("id")),
            itemName=name,
            currentQuantity=quantity,
            unitOfMeasurement=str(item.get("unitOfMeasurement") or "") or None,
            lastUnitCost=unit_cost,
            totalValue=quantity * unit_cost,
            itemType=str(item.get("itemType") or "") or None,
            type=str(item.get("type") or "") or None,
            minQuantity=minimum,
            isLow=minimum is not None and quantity < minimum,
        ))

    return StockSummaryResponse(
        items=out,
        totalValue=sum(i.totalValue for i in out),
        lowStockCount=sum(1 for i in out if i.isLow),
    )
