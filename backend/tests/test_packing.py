"""
Tests for parcel packing.
"""
from dataclasses import dataclass

import pytest

from edi_outbound.core.errors import ValidationError
from edi_outbound.services.packing import assert_conservation, pack_order_lines


@dataclass
class Line:
    line_number: int
    quantity: int


def _layout(packed):
    return [[(i.line.line_number, i.quantity) for i in s.items] for s in packed]


class TestPackOrderLines:
    def test_single_line_over_capacity_splits(self):
        packed = pack_order_lines([Line(1, 14)], capacity=12)
        assert _layout(packed) == [[(1, 12)], [(1, 2)]]
        assert [s.total_quantity for s in packed] == [12, 2]

    def test_exact_capacity_is_one_shipment(self):
        packed = pack_order_lines([Line(1, 12)], capacity=12)
        assert _layout(packed) == [[(1, 12)]]

    def test_split_fills_headroom_first(self):
        lines = [Line(1, 5), Line(2, 9), Line(3, 3)]
        packed = pack_order_lines(lines, capacity=12)
        assert _layout(packed) == [[(1, 5), (2, 7)], [(2, 2), (3, 3)]]

    def test_later_line_joins_open_parcel(self):
        lines = [Line(1, 10), Line(2, 5), Line(3, 2)]
        packed = pack_order_lines(lines, capacity=12)
        assert _layout(packed) == [[(1, 10), (2, 2)], [(2, 3), (3, 2)]]

    def test_no_split_whole_line_goes_to_first_parcel_with_room(self):
        lines = [Line(1, 8), Line(2, 9), Line(3, 6), Line(4, 4)]
        packed = pack_order_lines(lines, capacity=12, allow_split=False)
        assert _layout(packed) == [[(1, 8), (4, 4)], [(2, 9)], [(3, 6)]]

    def test_no_split_opens_new_shipment(self):
        lines = [Line(1, 5), Line(2, 9), Line(3, 3)]
        packed = pack_order_lines(lines, capacity=12, allow_split=False)
        assert _layout(packed) == [[(1, 5), (3, 3)], [(2, 9)]]

    def test_no_split_line_over_capacity_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            pack_order_lines([Line(1, 3), Line(2, 13)], capacity=12, allow_split=False)
        assert exc.value.line_number == 2

    @pytest.mark.parametrize("qty", [0, -1])
    def test_non_positive_quantity(self, qty):
        with pytest.raises(ValidationError):
            pack_order_lines([Line(1, qty)], capacity=12)

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValidationError):
            pack_order_lines([Line(1, 1)], capacity=0)

    def test_deterministic(self):
        lines = [Line(n, q) for n, q in enumerate([7, 3, 11, 1, 12, 4], start=1)]
        assert _layout(pack_order_lines(lines, 12)) == _layout(pack_order_lines(lines, 12))

    def test_never_exceeds_capacity_and_conserves(self):
        lines = [Line(n, q) for n, q in enumerate([7, 3, 11, 1, 12, 4, 25], start=1)]
        packed = pack_order_lines(lines, capacity=12)
        assert all(0 < s.total_quantity <= 12 for s in packed)
        assert all(s.total_quantity == sum(i.quantity for i in s.items) for s in packed)
        assert_conservation(lines, packed)


def test_conservation_detects_missing_units():
    lines = [Line(1, 14)]
    packed = pack_order_lines(lines, capacity=12)
    packed.pop()
    with pytest.raises(ValidationError):
        assert_conservation(lines, packed)
