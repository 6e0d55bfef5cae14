import logging
import unittest

import pytest

from s7comm.address import parse_bit, parse_byte
from s7comm.batch import (
    MAX_ITEMS_PER_PDU,
    Fragment,
    fragment_payload,
    max_read_payload,
    max_write_payload,
    merge_read_results,
    merge_write_results,
    plan_reads,
    plan_writes,
    split_item,
)
from s7comm.error import InvalidArgument
from s7comm.item import DataItem
from s7comm.s7protocol import read_request_size, read_response_size, write_request_size
from s7comm.type import ReturnCode, TransportSize

logging.basicConfig(level=logging.WARNING)


@pytest.mark.batch
class TestPlanReads(unittest.TestCase):
    def test_single_pdu(self) -> None:
        items = [parse_byte(f"DB1.{i * 2}", 2) for i in range(5)]
        batches = plan_reads(items, 240)
        self.assertEqual(len(batches), 1)
        self.assertEqual([f.item for f in batches[0]], items)

    def test_item_limit(self) -> None:
        items = [parse_byte(f"M{i}") for i in range(45)]
        batches = plan_reads(items, 960)
        self.assertEqual([len(b) for b in batches], [20, 20, 5])
        self.assertTrue(all(len(b) <= MAX_ITEMS_PER_PDU for b in batches))

    def test_size_limit(self) -> None:
        items = [parse_byte(f"DB1.{i * 100}", 100) for i in range(5)]
        batches = plan_reads(items, 240)
        self.assertEqual([len(b) for b in batches], [2, 2, 1])
        for batch in batches:
            batch_items = [f.item for f in batch]
            self.assertLessEqual(read_request_size(len(batch_items)), 240)
            self.assertLessEqual(read_response_size(batch_items), 240)

    def test_order_preserved(self) -> None:
        items = [parse_byte(f"DB1.{i}", 50 + i) for i in range(10)]
        batches = plan_reads(items, 240)
        indices = [f.index for batch in batches for f in batch]
        self.assertEqual(indices, list(range(10)))

    def test_large_item_split(self) -> None:
        item = parse_byte("DB1.0", 1000)
        batches = plan_reads([item], 240)
        fragments = [f for batch in batches for f in batch]
        self.assertGreater(len(fragments), 1)
        self.assertEqual(sum(f.item.byte_length for f in fragments), 1000)
        self.assertEqual(fragments[0].item.byte_address, 0)
        self.assertEqual(fragments[1].item.byte_address, fragments[0].item.byte_length)
        for fragment in fragments:
            self.assertLessEqual(fragment.item.byte_length, max_read_payload(240))

    def test_pdu_too_small(self) -> None:
        self.assertRaises(InvalidArgument, plan_reads, [parse_byte("M0")], 18)


@pytest.mark.batch
class TestPlanWrites(unittest.TestCase):
    def test_size_limit(self) -> None:
        items = [parse_byte(f"DB1.{i * 100}", 90) for i in range(4)]
        batches = plan_writes(items, 240)
        self.assertEqual([len(b) for b in batches], [2, 2])
        for batch in batches:
            self.assertLessEqual(write_request_size([f.item for f in batch]), 240)

    def test_word_item_split_on_element_boundary(self) -> None:
        item = parse_byte("DB1.0", 301)
        limit = max_write_payload(240)
        self.assertEqual(limit, 212)
        fragments = split_item(0, item, limit)
        self.assertEqual([f.item.count for f in fragments], [212, 89])
        self.assertEqual([f.offset for f in fragments], [0, 212])

    def test_timer_split_by_element_number(self) -> None:
        item = parse_byte("T10", 150)
        fragments = split_item(0, item, 212)
        self.assertEqual([(f.item.byte_address, f.item.count) for f in fragments], [(10, 106), (116, 44)])
        self.assertEqual([f.offset for f in fragments], [0, 212])

    def test_bit_item_never_split(self) -> None:
        self.assertEqual(len(split_item(0, parse_bit("M0.0"), 1)), 1)


@pytest.mark.batch
class TestMerge(unittest.TestCase):
    def test_fragment_payload(self) -> None:
        item = parse_byte("DB1.0", 6)
        data = DataItem.create(b"abcdef")
        fragment = Fragment(0, item.with_span(2, 3), 2)
        self.assertEqual(fragment_payload(fragment, [data]).data, b"cde")
        self.assertIs(fragment_payload(Fragment(0, item, 0), [data]), data)

    def test_merge_reads(self) -> None:
        first = parse_byte("DB1.0", 2)
        batches = [[Fragment(0, first.with_span(0, 1), 0)], [Fragment(0, first.with_span(1, 1), 1), Fragment(1, first, 0)]]
        results = [
            [DataItem.from_response(b"a", TransportSize.BYTE_WORD_DWORD, ReturnCode.SUCCESS)],
            [
                DataItem.from_response(b"b", TransportSize.BYTE_WORD_DWORD, ReturnCode.SUCCESS),
                DataItem.failed(ReturnCode.ACCESS_DENIED),
            ],
        ]
        merged = merge_read_results(2, batches, results)
        self.assertEqual(merged[0].data, b"ab")
        self.assertTrue(merged[0].ok)
        self.assertEqual(merged[1].return_code, ReturnCode.ACCESS_DENIED)

    def test_failed_fragment_fails_item(self) -> None:
        item = parse_byte("DB1.0", 2)
        batches = [[Fragment(0, item.with_span(0, 1), 0), Fragment(0, item.with_span(1, 1), 1)]]
        results = [
            [
                DataItem.from_response(b"a", TransportSize.BYTE_WORD_DWORD, ReturnCode.SUCCESS),
                DataItem.failed(ReturnCode.ADDRESS_OUT_OF_RANGE),
            ]
        ]
        merged = merge_read_results(1, batches, results)
        self.assertFalse(merged[0].ok)
        self.assertEqual(merged[0].data, b"")

    def test_merge_writes(self) -> None:
        item = parse_byte("DB1.0", 2)
        batches = [[Fragment(0, item, 0), Fragment(1, item, 0)], [Fragment(1, item, 0)]]
        codes = merge_write_results(2, batches, [[ReturnCode.SUCCESS, ReturnCode.ACCESS_DENIED], [ReturnCode.SUCCESS]])
        self.assertEqual(codes, [ReturnCode.SUCCESS, ReturnCode.ACCESS_DENIED])
