"""
Decoder for `Registered` logs.

Turns raw eth_getLogs records into EventRecords and fixes the global leaf
order by sorting on the contract-assigned registration index. Retrieval may
return sub-ranges in any order, so this is the only place order is decided.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import event_abi_to_log_topic
from hexbytes import HexBytes

from zkvote_toolkit.shared.constants import FieldConstants, RegistryConstants
from zkvote_toolkit.shared.exceptions import DecodeError
from zkvote_toolkit.shared.logging import get_logger
from zkvote_toolkit.shared.services.resource_manager import (
    resource_manager,
)
from zkvote_toolkit.shared.types import EventRecord
from zkvote_toolkit.utils.formatters import to_0x_hex

_logger = get_logger(__name__)


def _input_type(entry: Dict[str, Any]) -> str:
    return entry["type"]


class LeafDecoder:
    """
    Decodes registration logs against the event ABI.

    The first event input is the commitment and the second the registration
    index, unless `commitment_field` / `index_field` name them explicitly.
    """

    def __init__(
        self,
        event_abi: Optional[Dict[str, Any]] = None,
        commitment_field: Optional[str] = None,
        index_field: Optional[str] = None,
    ):
        self.event_abi = event_abi or resource_manager.load_event_abi(
            RegistryConstants.ELECTION_ABI, RegistryConstants.REGISTERED_EVENT
        )
        self.topic = HexBytes(event_abi_to_log_topic(self.event_abi))

        inputs = self.event_abi.get("inputs", [])
        if len(inputs) < 2:
            raise ValueError(
                f"Event {self.event_abi.get('name')} needs a commitment and an index input"
            )
        names = [entry.get("name") for entry in inputs]
        self._commitment_field = commitment_field or names[0]
        self._index_field = index_field or names[1]
        for name in (self._commitment_field, self._index_field):
            if name not in names:
                raise ValueError(f"Event has no input named {name!r}")

        self._indexed = [e for e in inputs if e.get("indexed")]
        self._data_inputs = [e for e in inputs if not e.get("indexed")]

    @property
    def topic_hex(self) -> str:
        return to_0x_hex(self.topic)

    def _decode_fields(self, log: Dict[str, Any]) -> Dict[str, Any]:
        try:
            topics = [HexBytes(t) for t in log["topics"]]
            data = HexBytes(log.get("data", b""))
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Log is missing topics or data: {e}") from e

        if not topics or topics[0] != self.topic:
            raise DecodeError(
                f"Log topic {to_0x_hex(topics[0]) if topics else None} does not "
                f"match {self.event_abi['name']} ({self.topic_hex})"
            )
        if len(topics) - 1 != len(self._indexed):
            raise DecodeError(
                f"Expected {len(self._indexed)} indexed topics, got {len(topics) - 1}"
            )

        fields: Dict[str, Any] = {}
        try:
            for entry, topic in zip(self._indexed, topics[1:]):
                fields[entry["name"]] = decode([_input_type(entry)], topic)[0]
            values = decode(
                [_input_type(e) for e in self._data_inputs], bytes(data)
            )
        except (DecodingError, ValueError, TypeError) as e:
            raise DecodeError(
                f"Malformed {self.event_abi['name']} log data: {e}"
            ) from e

        for entry, value in zip(self._data_inputs, values):
            fields[entry["name"]] = value
        return fields

    def decode_log(self, log: Dict[str, Any]) -> EventRecord:
        """Decode one raw log."""
        fields = self._decode_fields(log)
        commitment = fields[self._commitment_field]
        index = fields[self._index_field]

        if not isinstance(commitment, int) or not isinstance(index, int):
            raise DecodeError("Commitment and index must be integers")
        if not 0 <= commitment < FieldConstants.SNARK_SCALAR_FIELD:
            raise DecodeError(
                f"Commitment {commitment} is outside the SNARK scalar field"
            )

        tx_hash = log.get("transactionHash")
        return EventRecord(
            commitment=commitment,
            registration_index=index,
            block_number=log.get("blockNumber"),
            transaction_hash=to_0x_hex(tx_hash) if tx_hash else None,
            log_index=log.get("logIndex"),
        )

    def decode_records(
        self, raw_logs: Iterable[Dict[str, Any]]
    ) -> List[EventRecord]:
        """
        Decode and sort by registration index.

        Raises:
            DecodeError: a malformed log, or two logs sharing an index
        """
        records = sorted(
            (self.decode_log(log) for log in raw_logs),
            key=lambda r: r.registration_index,
        )

        for previous, current in zip(records, records[1:]):
            if previous.registration_index == current.registration_index:
                raise DecodeError(
                    f"Duplicate registration index {current.registration_index} "
                    f"(blocks {previous.block_number} and {current.block_number})"
                )

        _warn_on_gaps(records)
        return records

    def decode(self, raw_logs: Iterable[Dict[str, Any]]) -> List[int]:
        """Ordered commitments (the leaf sequence)."""
        return [r.commitment for r in self.decode_records(raw_logs)]


def _warn_on_gaps(records: Sequence[EventRecord]) -> None:
    if not records:
        return
    first = records[0].registration_index
    last = records[-1].registration_index
    expected = last - first + 1
    if expected != len(records):
        _logger.warning(
            f"Registration indices {first}..{last} have "
            f"{expected - len(records)} gaps; events may be missing"
        )
