# Copyright (C) 2024 The Electrum developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

import base64
import binascii
from typing import Sequence, Iterator, Union

from .bitcoin import construct_witness, read_var_int, read_var_str
from .util import SerializationError, MalformedSignature, assert_bytes


class WitnessStack:
    """Ordered list of witness items. Position is significant:
    e.g. [signature, pubkey] for p2wpkh, [signature] for a taproot key path spend.

    Wire format: var_int(count) || var_str(item)..., usually base64 encoded.
    """

    __slots__ = ('_items',)

    def __init__(self, items: Sequence[bytes] = ()):
        assert_bytes(*items)
        self._items = tuple(bytes(item) for item in items)

    @property
    def items(self) -> Sequence[bytes]:
        return self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._items)

    def __getitem__(self, idx: int) -> bytes:
        return self._items[idx]

    def __eq__(self, other) -> bool:
        if not isinstance(other, WitnessStack):
            return False
        return self._items == other._items

    def __hash__(self):
        return hash(self._items)

    def __repr__(self):
        return f"<WitnessStack {[item.hex() for item in self._items]}>"

    def serialize(self) -> bytes:
        return construct_witness(self._items)

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode('ascii')

    @classmethod
    def deserialize(cls, data: bytes) -> 'WitnessStack':
        """Parses a serialized witness stack. All of data must be consumed."""
        count, offset = read_var_int(data)
        items = []
        for _ in range(count):
            if offset >= len(data):
                raise SerializationError(f"witness declares {count} items, but only {len(items)} present")
            item, consumed = read_var_str(data, offset)
            items.append(item)
            offset += consumed
        if offset != len(data):
            raise SerializationError(f"{len(data) - offset} trailing bytes after witness")
        return cls(items)

    @classmethod
    def from_base64(cls, s: Union[str, bytes]) -> 'WitnessStack':
        try:
            data = base64.b64decode(s, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedSignature(f"witness is not valid base64: {e}") from e
        return cls.deserialize(data)
