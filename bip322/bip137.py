# -*- coding: utf-8 -*-
#
# Electrum - lightweight Bitcoin client
# Copyright (C) 2011 thomasv@gitorious
#
# Permission is hereby granted, free of charge, to any person
# obtaining a copy of this software and associated documentation files
# (the "Software"), to deal in the Software without restriction,
# including without limitation the rights to use, copy, modify, merge,
# publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so,
# subject to the following conditions:
#
# The above copyright notice and this permission notice shall be
# included in all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND,
# EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF
# MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS
# BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN
# ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN
# CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""Legacy "Bitcoin Signed Message" signatures (BIP-137).

A signature is 65 bytes: a header byte followed by the compact (r, s) pair.
The header encodes the recovery id and a hint about the address type:

    27-30: p2pkh (uncompressed)
    31-34: p2pkh (compressed)
    35-38: p2wpkh-p2sh
    39-42: p2wpkh
    43-46: p2tr (not part of BIP-137, only accepted when allow_extended is set)
"""

import base64
import binascii
from typing import NamedTuple, Union, Dict, Set, Tuple

import electrum_ecc as ecc

from .bitcoin import (AddressKind, AddressInfo, classify_address, magic_hash,
                      public_key_to_p2pkh, pubkey_to_address)
from .logging import get_logger
from .util import (Bip322Error, InvalidHeaderRange, InvalidSignatureLength,
                   KeyRecoveryFailed, MalformedSignature, BitcoinException)


_logger = get_logger(__name__)


SIG65_LEN = 65
HEADER_MIN = 27
HEADER_MAX = 42
HEADER_MAX_EXTENDED = 46

# indexed by (header - 27) // 4
_HEADER_FAMILIES = (
    (AddressKind.P2PKH, False),
    (AddressKind.P2PKH, True),
    (AddressKind.P2SH_P2WPKH, True),
    (AddressKind.P2WPKH, True),
    (AddressKind.P2TR, True),
)


class Bip137Header(NamedTuple):
    recovery_id: int
    compressed: bool
    family: AddressKind


def decode_header(header: int, *, allow_extended: bool = False) -> Bip137Header:
    max_header = HEADER_MAX_EXTENDED if allow_extended else HEADER_MAX
    if not (HEADER_MIN <= header <= max_header):
        raise InvalidHeaderRange(f"header byte {header} not in range {HEADER_MIN}-{max_header}")
    family, compressed = _HEADER_FAMILIES[(header - HEADER_MIN) // 4]
    return Bip137Header(
        recovery_id=(header - HEADER_MIN) % 4,
        compressed=compressed,
        family=family,
    )


def encode_header(recovery_id: int, family: AddressKind, compressed: bool) -> int:
    if not (0 <= recovery_id <= 3):
        raise ValueError(f"recovery id is {recovery_id}, but should be 0 <= recid <= 3")
    try:
        offset = _HEADER_FAMILIES.index((family, compressed))
    except ValueError:
        raise BitcoinException(
            f"no header for {family.name} ({'compressed' if compressed else 'uncompressed'})") from None
    return HEADER_MIN + recovery_id + 4 * offset


def decode_signature(signature: Union[str, bytes]) -> bytes:
    """Returns the raw bytes of a signature given as base64 (str) or raw bytes."""
    if isinstance(signature, (bytes, bytearray)):
        return bytes(signature)
    if not isinstance(signature, str):
        raise MalformedSignature(f"signature must be str or bytes, not {type(signature).__name__}")
    try:
        return base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedSignature(f"signature is not valid base64: {e}") from e


def is_bip137_signature(signature: Union[str, bytes]) -> bool:
    try:
        sig65 = decode_signature(signature)
    except MalformedSignature:
        return False
    return len(sig65) == SIG65_LEN and HEADER_MIN <= sig65[0] <= HEADER_MAX_EXTENDED


def _recover(
    message: Union[bytes, str],
    sig65: bytes,
    *,
    allow_extended: bool = False,
) -> Tuple[ecc.ECPubkey, Bip137Header, bytes]:
    if len(sig65) != SIG65_LEN:
        raise InvalidSignatureLength(f"signature is {len(sig65)} bytes, expected {SIG65_LEN}")
    header = decode_header(sig65[0], allow_extended=allow_extended)
    h = magic_hash(message)
    try:
        public_key = ecc.ECPubkey.from_ecdsa_sig64(sig65[1:], header.recovery_id, h)
    except Exception as e:
        raise KeyRecoveryFailed(f"cannot recover public key: {e!r}") from e
    return public_key, header, h


def recover_pubkey(message: Union[bytes, str], sig65: bytes, *, allow_extended: bool = False) -> bytes:
    """Returns the public key that produced sig65, serialized as the header says."""
    public_key, header, _ = _recover(message, sig65, allow_extended=allow_extended)
    return public_key.get_public_key_bytes(compressed=header.compressed)


def derive_addresses(public_key: bytes, net) -> Dict[AddressKind, Set[str]]:
    """Every address controlled by public_key alone, on the given network."""
    pubkey = ecc.ECPubkey(public_key)
    compressed = pubkey.get_public_key_bytes(compressed=True)
    uncompressed = pubkey.get_public_key_bytes(compressed=False)
    return {
        AddressKind.P2PKH: {
            public_key_to_p2pkh(compressed, net=net),
            public_key_to_p2pkh(uncompressed, net=net),
        },
        AddressKind.P2SH_P2WPKH: {pubkey_to_address(AddressKind.P2SH_P2WPKH, compressed, net=net)},
        AddressKind.P2WPKH: {pubkey_to_address(AddressKind.P2WPKH, compressed, net=net)},
        AddressKind.P2TR: {pubkey_to_address(AddressKind.P2TR, compressed, net=net)},
    }


def _hinted_address(public_key: ecc.ECPubkey, header: Bip137Header, net) -> str:
    pubkey_bytes = public_key.get_public_key_bytes(compressed=header.compressed)
    return pubkey_to_address(header.family, pubkey_bytes, net=net)


def verify_sig65(
    message: Union[bytes, str],
    info: AddressInfo,
    sig65: bytes,
    *,
    allow_extended: bool = False,
    strict: bool = False,
) -> bool:
    """Checks sig65 against the already classified address.

    Raises on structural problems (length, header). Returns False if the
    recovered key does not control the address or the signature is invalid.
    Without strict, the header's address type is only a hint: any address
    the recovered key controls is accepted.
    """
    public_key, header, h = _recover(message, sig65, allow_extended=allow_extended)
    claimed = info.address.lower() if info.kind.is_segwit() else info.address
    if strict:
        candidates = {_hinted_address(public_key, header, info.net)}
    else:
        derived = derive_addresses(public_key.get_public_key_bytes(compressed=True), info.net)
        candidates = set().union(*derived.values())
    if claimed not in candidates:
        _logger.debug(f"recovered key does not control {claimed} (strict={strict})")
        return False
    # note: `$ bitcoin-cli verifymessage` does NOT enforce the low-S rule for ecdsa sigs
    return public_key.ecdsa_verify(sig65[1:], h, enforce_low_s=False)


def verify(message: Union[bytes, str], address: str, signature: Union[str, bytes]) -> bool:
    """Verifies a BIP-137 signature. Never raises: any problem yields False."""
    try:
        info = classify_address(address)
        sig65 = decode_signature(signature)
        return verify_sig65(message, info, sig65)
    except Bip322Error as e:
        _logger.debug(f"bip137 verification failed: {e!r}")
        return False


def sign(
    message: Union[bytes, str],
    privkey: Union[ecc.ECPrivkey, bytes],
    *,
    compressed: bool = True,
    family: AddressKind = AddressKind.P2PKH,
) -> bytes:
    """Returns a 65 byte signature over the magic hash of message,
    with the header byte of the given address family.
    """
    if not isinstance(privkey, ecc.ECPrivkey):
        privkey = ecc.ECPrivkey(privkey)
    sig65 = privkey.ecdsa_sign_recoverable(magic_hash(message), is_compressed=compressed)
    recid = (sig65[0] - HEADER_MIN) & 3
    return bytes([encode_header(recid, family, compressed)]) + sig65[1:]
