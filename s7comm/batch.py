"""
Batching of request items under the negotiated PDU length.

Items are cut into fragments (only items too large for a single PDU are
actually split), then packed in order into as few PDUs as the PLC accepts.
Results come back per fragment and are merged back into one result per item.
"""

import logging
from typing import Callable, Dict, List, NamedTuple, Sequence

from .error import InvalidArgument
from .item import DataItem, RequestItem
from .s7protocol import (
    DATA_ITEM_HEADER_SIZE,
    ITEM_SPEC_SIZE,
    read_request_size,
    read_response_size,
    write_request_size,
    write_response_size,
)
from .type import ReturnCode, TransportSize, VariableType

logger = logging.getLogger(__name__)

# maximum number of variables in one read or write job
MAX_ITEMS_PER_PDU = 20

# smallest PDU that still carries one write item with a 2 byte payload
MIN_PDU_LENGTH = write_request_size([]) + ITEM_SPEC_SIZE + DATA_ITEM_HEADER_SIZE + 2


class Fragment(NamedTuple):
    index: int  # position of the item this fragment belongs to
    item: RequestItem
    offset: int  # byte offset of the fragment inside the item's payload


Batch = List[Fragment]


def max_read_payload(pdu_length: int) -> int:
    """Largest payload a single read item may return in one PDU."""
    return (pdu_length - read_response_size([]) - DATA_ITEM_HEADER_SIZE) & ~1


def max_write_payload(pdu_length: int) -> int:
    """Largest payload a single write item may carry in one PDU."""
    return (pdu_length - write_request_size([]) - ITEM_SPEC_SIZE - DATA_ITEM_HEADER_SIZE) & ~1


def split_item(index: int, item: RequestItem, max_payload: int) -> List[Fragment]:
    """Cut an item into fragments of whole elements that fit ``max_payload``."""
    if item.byte_length <= max_payload:
        return [Fragment(index, item, 0)]
    if not item.splittable:
        raise InvalidArgument(f"{item!r} does not fit a PDU and cannot be split")

    per_fragment = max_payload // item.element_size
    if per_fragment <= 0:
        raise InvalidArgument(f"negotiated PDU length too small for {item!r}")

    # timers and counters are addressed by element number, everything else by byte
    step = 1 if item.variable_type in (VariableType.TIMER, VariableType.COUNTER) else item.element_size

    fragments = []
    done = 0
    while done < item.count:
        count = min(per_fragment, item.count - done)
        fragment = item.with_span(item.byte_address + done * step, count)
        fragments.append(Fragment(index, fragment, done * item.element_size))
        done += count
    logger.debug(f"Split item {index} into {len(fragments)} fragments")
    return fragments


def _pack(fragments: List[Fragment], fits: Callable[[List[RequestItem]], bool]) -> List[Batch]:
    batches: List[Batch] = []
    current: Batch = []
    for fragment in fragments:
        candidate = current + [fragment]
        if current and (len(candidate) > MAX_ITEMS_PER_PDU or not fits([f.item for f in candidate])):
            batches.append(current)
            current = [fragment]
        else:
            current = candidate
    if current:
        batches.append(current)
    return batches


def plan_reads(items: Sequence[RequestItem], pdu_length: int) -> List[Batch]:
    """Group read items into batches that each fit one request and one response PDU."""
    limit = max_read_payload(pdu_length)
    if limit <= 0:
        raise InvalidArgument(f"PDU length {pdu_length} too small for a read request")

    fragments = [f for index, item in enumerate(items) for f in split_item(index, item, limit)]

    def fits(batch: List[RequestItem]) -> bool:
        return read_request_size(len(batch)) <= pdu_length and read_response_size(batch) <= pdu_length

    batches = _pack(fragments, fits)
    logger.debug(f"Planned {len(items)} read items into {len(batches)} PDUs of at most {pdu_length} bytes")
    return batches


def plan_writes(items: Sequence[RequestItem], pdu_length: int) -> List[Batch]:
    """Group write items into batches that each fit one request PDU."""
    limit = max_write_payload(pdu_length)
    if limit <= 0:
        raise InvalidArgument(f"PDU length {pdu_length} too small for a write request")

    fragments = [f for index, item in enumerate(items) for f in split_item(index, item, limit)]

    def fits(batch: List[RequestItem]) -> bool:
        return write_request_size(batch) <= pdu_length and write_response_size(len(batch)) <= pdu_length

    batches = _pack(fragments, fits)
    logger.debug(f"Planned {len(items)} write items into {len(batches)} PDUs of at most {pdu_length} bytes")
    return batches


def fragment_payload(fragment: Fragment, data_items: Sequence[DataItem]) -> DataItem:
    """Slice the part of a write payload that belongs to ``fragment``."""
    source = data_items[fragment.index]
    if fragment.offset == 0 and fragment.item.byte_length == len(source.data):
        return source
    chunk = source.data[fragment.offset : fragment.offset + fragment.item.byte_length]
    return DataItem(chunk, source.data_type, source.return_code, source.transport_size)


def merge_read_results(item_count: int, batches: Sequence[Batch], results: Sequence[Sequence[DataItem]]) -> List[DataItem]:
    """Reassemble per fragment read results into one :class:`DataItem` per item.

    A failed fragment fails the whole item with the fragment's return code.
    """
    chunks: Dict[int, List[DataItem]] = {index: [] for index in range(item_count)}
    failed: Dict[int, int] = {}
    for batch, batch_results in zip(batches, results):
        for fragment, data_item in zip(batch, batch_results):
            if not data_item.ok:
                failed.setdefault(fragment.index, data_item.return_code)
            else:
                chunks[fragment.index].append(data_item)

    merged = []
    for index in range(item_count):
        if index in failed:
            merged.append(DataItem.failed(failed[index]))
        elif len(chunks[index]) == 1:
            merged.append(chunks[index][0])
        else:
            parts = chunks[index]
            transport_size = parts[0].transport_size if parts else TransportSize.NULL
            merged.append(DataItem.from_response(b"".join(p.data for p in parts), transport_size, ReturnCode.SUCCESS))
    return merged


def merge_write_results(item_count: int, batches: Sequence[Batch], results: Sequence[Sequence[int]]) -> List[int]:
    """Reassemble per fragment return codes; the first failure of an item wins."""
    codes: List[int] = [ReturnCode.SUCCESS] * item_count
    for batch, batch_codes in zip(batches, results):
        for fragment, code in zip(batch, batch_codes):
            if code != ReturnCode.SUCCESS and codes[fragment.index] == ReturnCode.SUCCESS:
                codes[fragment.index] = code
    return codes
