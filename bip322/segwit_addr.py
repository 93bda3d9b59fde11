# Copyright (c) 2017 Pieter Wuille
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
# THE SOFTWARE.

"""Bech32/Bech32m (BIP-173, BIP-350) segwit address codec."""

from enum import Enum
from typing import Optional, Sequence, NamedTuple, List

CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_CHARSET_INVERSE = {x: CHARSET.find(x) for x in CHARSET}

_GENERATOR = (0x3b6a57b2, 0x26508e6d, 0x1ea119fa, 0x3d4233dd, 0x2a1462b3)


class Encoding(Enum):
    BECH32 = 1
    BECH32M = 0x2bc830a3  # value is the checksum constant

    @classmethod
    def for_witness_version(cls, witver: int) -> 'Encoding':
        return cls.BECH32 if witver == 0 else cls.BECH32M


class DecodedBech32(NamedTuple):
    encoding: Encoding
    hrp: str
    data: Sequence[int]  # 5-bit ints, checksum stripped


class WitnessProgram(NamedTuple):
    version: int
    program: bytes


def _polymod(values: Sequence[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1ffffff) << 5 ^ value
        for i, gen in enumerate(_GENERATOR):
            if (top >> i) & 1:
                chk ^= gen
    return chk


def _hrp_expand(hrp: str) -> List[int]:
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def _create_checksum(encoding: Encoding, hrp: str, data: List[int]) -> List[int]:
    polymod = _polymod(_hrp_expand(hrp) + data + [0] * 6) ^ encoding.value
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def bech32_encode(encoding: Encoding, hrp: str, data: List[int]) -> str:
    combined = data + _create_checksum(encoding, hrp, data)
    return hrp + '1' + ''.join(CHARSET[d] for d in combined)


def bech32_decode(bech: str) -> Optional[DecodedBech32]:
    """Validate a Bech32/Bech32m string. Returns None if invalid."""
    if bech.lower() != bech and bech.upper() != bech:
        return None  # mixed case
    pos = bech.rfind('1')
    if pos < 1 or pos + 7 > len(bech) or len(bech) > 90:
        return None
    if any(ord(x) < 33 or ord(x) > 126 for x in bech[:pos+1]):
        return None
    bech = bech.lower()
    hrp = bech[:pos]
    try:
        data = [_CHARSET_INVERSE[x] for x in bech[pos+1:]]
    except KeyError:
        return None
    check = _polymod(_hrp_expand(hrp) + data)
    try:
        encoding = Encoding(check)
    except ValueError:
        return None
    return DecodedBech32(encoding=encoding, hrp=hrp, data=data[:-6])


def convertbits(data, frombits: int, tobits: int, pad=True) -> Optional[List[int]]:
    """General power-of-2 base conversion."""
    acc = 0
    bits = 0
    ret = []
    maxv = (1 << tobits) - 1
    max_acc = (1 << (frombits + tobits - 1)) - 1
    for value in data:
        if value < 0 or (value >> frombits):
            return None
        acc = ((acc << frombits) | value) & max_acc
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)
    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        return None
    return ret


def decode_segwit_address(hrp: str, addr: str) -> Optional[WitnessProgram]:
    """Decode a segwit address for the given hrp. Returns None if invalid."""
    decoded = bech32_decode(addr)
    if decoded is None or decoded.hrp != hrp or not decoded.data:
        return None
    witver = decoded.data[0]
    program = convertbits(decoded.data[1:], 5, 8, False)
    if program is None or not (2 <= len(program) <= 40):
        return None
    if witver > 16:
        return None
    if witver == 0 and len(program) not in (20, 32):
        return None
    if decoded.encoding != Encoding.for_witness_version(witver):
        return None
    return WitnessProgram(version=witver, program=bytes(program))


def encode_segwit_address(hrp: str, witver: int, witprog: bytes) -> Optional[str]:
    ret = bech32_encode(Encoding.for_witness_version(witver), hrp, [witver] + convertbits(witprog, 8, 5))
    if decode_segwit_address(hrp, ret) is None:
        return None
    return ret
