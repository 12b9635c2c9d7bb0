"""
Parcel packing.

Splits the lines of an order into shipments of at most ``capacity`` units
(pairs of shoes, in the original use case).  The algorithm is a greedy
first-fit in input order and is kept that way on purpose: downstream
document numbers and file names depend on the partition, so the same input
must always produce the same shipments in the same order.

Placement of one line:

1. if the whole remaining quantity fits into an existing shipment, it goes
   into the first such shipment (creation order);
2. otherwise, when splitting is allowed, the quantity is poured into the
   first shipment with any headroom, then the next, opening new shipments
   as needed;
3. when splitting is not allowed, the line opens a new shipment of its own.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Sequence

from edi_outbound.core.errors import ValidationError


@dataclass(frozen=True)
class PackedItem:
    line: Any  # OrderLine or anything with .line_number / .quantity
    quantity: int


@dataclass
class PackedShipment:
    items: list[PackedItem] = field(default_factory=list)
    total_quantity: int = 0

    def headroom(self, capacity: int) -> int:
        return capacity - self.total_quantity

    def add(self, line: Any, quantity: int) -> None:
        self.items.append(PackedItem(line=line, quantity=quantity))
        self.total_quantity += quantity


def pack_order_lines(
    lines: Sequence[Any],
    capacity: int,
    allow_split: bool = True,
) -> list[PackedShipment]:
    """Partition *lines* into shipments of at most *capacity* units.

    Raises ``ValidationError`` for a non-positive capacity or quantity, and
    for a line larger than *capacity* when *allow_split* is False.
    """
    if capacity < 1:
        raise ValidationError(f"capacity must be at least 1, got {capacity}")

    # validate everything up front so a bad line never yields a partial result
    for line in lines:
        qty = line.quantity
        if not isinstance(qty, int) or qty <= 0:
            raise ValidationError(
                f"Invalid quantity {qty!r} for line {line.line_number}",
                line_number=line.line_number,
            )
        if not allow_split and qty > capacity:
            raise ValidationError(
                f"Line {line.line_number} quantity {qty} exceeds parcel capacity {capacity}",
                line_number=line.line_number,
            )

    shipments: list[PackedShipment] = []

    for line in lines:
        remaining = line.quantity

        whole = _first_with_headroom(shipments, capacity, need=remaining)
        if whole is not None:
            whole.add(line, remaining)
            continue

        if not allow_split:
            target = _open(shipments)
            target.add(line, remaining)
            continue

        while remaining > 0:
            target = _first_with_headroom(shipments, capacity, need=1) or _open(shipments)
            qty = min(remaining, target.headroom(capacity))
            target.add(line, qty)
            remaining -= qty

    return shipments


def _first_with_headroom(
    shipments: list[PackedShipment], capacity: int, *, need: int
) -> PackedShipment | None:
    for shipment in shipments:
        if shipment.headroom(capacity) >= need:
            return shipment
    return None


def _open(shipments: list[PackedShipment]) -> PackedShipment:
    created = PackedShipment()
    shipments.append(created)
    return created


def assert_conservation(lines: Sequence[Any], packed: Sequence[PackedShipment]) -> None:
    """Check that every line's quantity is fully and exactly assigned."""
    assigned: dict[int, int] = defaultdict(int)
    for shipment in packed:
        for item in shipment.items:
            assigned[item.line.line_number] += item.quantity
    for line in lines:
        got = assigned.pop(line.line_number, 0)
        if got != line.quantity:
            raise ValidationError(
                f"Packing lost inventory on line {line.line_number}: {got} of {line.quantity} assigned",
                line_number=line.line_number,
            )
    if assigned:
        raise ValidationError(f"Packing produced items for unknown lines {sorted(assigned)}")


__all__ = ["PackedItem", "PackedShipment", "pack_order_lines", "assert_conservation"]
