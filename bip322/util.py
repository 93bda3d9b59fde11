# Electrum - lightweight Bitcoin client
# Copyright (C) 2011 Thomas Voegtlin
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
import json
from typing import Set, Dict, Type, Any


def inv_dict(d):
    return {v: k for k, v in d.items()}


def all_subclasses(cls) -> Set:
    """Return all (transitive) subclasses of cls."""
    res = set(cls.__subclasses__())
    for sub in res.copy():
        res |= all_subclasses(sub)
    return res


class BitcoinException(Exception): pass


class Bip322Error(BitcoinException):
    """Base class of every error this library raises on purpose.

    Each subclass carries a stable, machine readable `code`. Callers
    building access-control decisions should treat any Bip322Error as
    "request rejected", which is distinct from a verification returning False.
    """
    code = 'bip322_error'

    def __init__(self, message: str = None):
        if message is None:
            message = self.__class__.__doc__ or self.code
        BitcoinException.__init__(self, message)

    def to_json(self) -> Dict[str, Any]:
        return {'code': self.code, 'message': str(self)}


class InvalidAddress(Bip322Error):
    """Address does not parse on mainnet, testnet or regtest."""
    code = 'invalid_address'


class UnsupportedAddressType(Bip322Error):
    """Address type is recognized but cannot be used for message signing."""
    code = 'unsupported_address_type'


class ScriptPathUnsupported(Bip322Error):
    """Taproot script-path spends are not supported."""
    code = 'script_path_unsupported'


class InvalidSchnorrLength(Bip322Error):
    """Schnorr signature must be 64 or 65 bytes."""
    code = 'invalid_schnorr_length'


class InvalidSighashType(Bip322Error):
    """Sighash type not allowed for this address type."""
    code = 'invalid_sighash_type'


class InvalidSignatureLength(Bip322Error):
    """BIP-137 signature must be 65 bytes."""
    code = 'invalid_signature_length'


class InvalidHeaderRange(Bip322Error):
    """BIP-137 header byte out of range."""
    code = 'invalid_header_range'


class KeyAddressMismatch(Bip322Error):
    """Private key does not correspond to the address."""
    code = 'key_address_mismatch'


class IntegerTooLarge(Bip322Error):
    """Integer does not fit into a var_int."""
    code = 'integer_too_large'


class EmptyWitness(Bip322Error):
    """Transaction input has no witness to encode."""
    code = 'empty_witness'


class EmptyBuffer(Bip322Error):
    """Cannot decode from an empty buffer."""
    code = 'empty_buffer'


class SerializationError(Bip322Error):
    """Truncated or otherwise malformed binary data."""
    code = 'serialization_error'


class MalformedSignature(Bip322Error):
    """Signature is not valid base64 or has a broken encoding."""
    code = 'malformed_signature'


class InvalidPrivateKey(Bip322Error):
    """Private key could not be parsed."""
    code = 'invalid_private_key'


class InvalidPublicKey(Bip322Error):
    """Public key is not a valid secp256k1 point encoding."""
    code = 'invalid_public_key'


class KeyRecoveryFailed(Bip322Error):
    """No public key could be recovered from the signature."""
    code = 'key_recovery_failed'


ERROR_CODES = {
    cls.code: cls for cls in all_subclasses(Bip322Error)
}  # type: Dict[str, Type[Bip322Error]]
assert len(ERROR_CODES) == len(all_subclasses(Bip322Error)), "error codes must be unique"


def assert_bytes(*args):
    for x in args:
        assert isinstance(x, (bytes, bytearray)), f"expected bytes, got {type(x)}"


def to_bytes(something, encoding='utf8') -> bytes:
    """
    cast string to bytes() like object
    """
    if isinstance(something, bytes):
        return something
    if isinstance(something, str):
        return something.encode(encoding)
    elif isinstance(something, bytearray):
        return bytes(something)
    else:
        raise TypeError("Not a string or bytes like object")


bfh = bytes.fromhex


def json_encode(obj) -> str:
    try:
        s = json.dumps(obj, sort_keys=True, indent=4)
    except TypeError:
        s = repr(obj)
    return s

