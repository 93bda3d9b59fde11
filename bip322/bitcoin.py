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

import enum
from enum import IntEnum, Enum
from typing import Tuple, Union, Sequence, NamedTuple, Type

import electrum_ecc as ecc

from .util import (BitcoinException, assert_bytes, to_bytes, inv_dict,
                   IntegerTooLarge, EmptyBuffer, SerializationError, InvalidAddress,
                   InvalidPrivateKey)
from . import segwit_addr
from . import constants
from .crypto import sha256d, hash_160, bip340_tagged_hash


# domain separation tag of the BIP-322 message hash
BIP322_TAG = b"BIP0322-signed-message"
# prefix of the legacy (BIP-137) message hash
MESSAGE_MAGIC = b"\x18Bitcoin Signed Message:\n"

# largest value accepted by var_int; the 0xff form only carries 48 bits
MAX_VAR_INT = 2 ** 48 - 1


class opcodes(IntEnum):
    # push value
    OP_0 = 0x00
    OP_FALSE = OP_0
    OP_PUSHDATA1 = 0x4c
    OP_PUSHDATA2 = 0x4d
    OP_PUSHDATA4 = 0x4e
    OP_1NEGATE = 0x4f
    OP_1 = 0x51
    OP_TRUE = OP_1
    OP_16 = 0x60

    # control
    OP_RETURN = 0x6a

    # stack ops
    OP_DUP = 0x76

    # bit logic
    OP_EQUAL = 0x87
    OP_EQUALVERIFY = 0x88

    # crypto
    OP_HASH160 = 0xa9
    OP_CHECKSIG = 0xac

    def hex(self) -> str:
        return bytes([self]).hex()


def script_num_to_bytes(i: int) -> bytes:
    """See CScriptNum in Bitcoin Core.
    Encodes an integer as bytes, to be used in script.
    """
    if i == 0:
        return b""

    result = bytearray()
    neg = i < 0
    absvalue = abs(i)
    while absvalue > 0:
        result.append(absvalue & 0xff)
        absvalue >>= 8

    if result[-1] & 0x80:
        result.append(0x80 if neg else 0x00)
    elif neg:
        result[-1] |= 0x80

    return bytes(result)


def var_int(i: int) -> bytes:
    # "CompactSize", capped at 48 bits: the 0xff form carries a u48 padded to 8 bytes.
    if not (0 <= i <= MAX_VAR_INT):
        raise IntegerTooLarge(f"cannot encode {i} as var_int (max {MAX_VAR_INT})")
    if i < 0xfd:
        return int.to_bytes(i, length=1, byteorder="little", signed=False)
    elif i <= 0xffff:
        return b"\xfd" + int.to_bytes(i, length=2, byteorder="little", signed=False)
    elif i <= 0xffffffff:
        return b"\xfe" + int.to_bytes(i, length=4, byteorder="little", signed=False)
    else:
        return b"\xff" + int.to_bytes(i, length=6, byteorder="little", signed=False) + bytes(2)


def read_var_int(buf: bytes, offset: int = 0) -> Tuple[int, int]:
    """Decodes a var_int at buf[offset:]. Returns (value, number of bytes consumed)."""
    if len(buf) <= offset:
        raise EmptyBuffer("cannot read var_int from empty buffer")
    size = buf[offset]
    if size < 0xfd:
        return size, 1
    payload_len = {0xfd: 2, 0xfe: 4, 0xff: 8}[size]
    payload = buf[offset+1:offset+1+payload_len]
    if len(payload) != payload_len:
        raise SerializationError(f"truncated var_int: expected {payload_len} bytes, got {len(payload)}")
    if size == 0xff and payload[6:] != bytes(2):
        raise IntegerTooLarge("var_int value does not fit into 48 bits")
    return int.from_bytes(payload, byteorder="little", signed=False), 1 + payload_len


def var_str(item: bytes) -> bytes:
    """Returns item prefixed with its var_int length, as present in the witness."""
    assert_bytes(item)
    return var_int(len(item)) + bytes(item)


def read_var_str(buf: bytes, offset: int = 0) -> Tuple[bytes, int]:
    """Decodes a var_int length prefixed byte string at buf[offset:].
    Returns (item, number of bytes consumed).
    """
    length, consumed = read_var_int(buf, offset)
    start = offset + consumed
    item = buf[start:start+length]
    if len(item) != length:
        raise SerializationError(f"truncated var_str: expected {length} bytes, got {len(item)}")
    return bytes(item), consumed + length


def _op_push(i: int) -> bytes:
    if i < opcodes.OP_PUSHDATA1:
        return int.to_bytes(i, length=1, byteorder="little", signed=False)
    elif i <= 0xff:
        return bytes([opcodes.OP_PUSHDATA1]) + int.to_bytes(i, length=1, byteorder="little", signed=False)
    elif i <= 0xffff:
        return bytes([opcodes.OP_PUSHDATA2]) + int.to_bytes(i, length=2, byteorder="little", signed=False)
    else:
        return bytes([opcodes.OP_PUSHDATA4]) + int.to_bytes(i, length=4, byteorder="little", signed=False)


def push_script(data: bytes) -> bytes:
    """Returns pushed data to the script, automatically
    choosing canonical opcodes depending on the length of the data.
    """
    data_len = len(data)

    # "small integer" opcodes
    if data_len == 0 or data_len == 1 and data[0] == 0:
        return bytes([opcodes.OP_0])
    elif data_len == 1 and data[0] <= 16:
        return bytes([opcodes.OP_1 - 1 + data[0]])
    elif data_len == 1 and data[0] == 0x81:
        return bytes([opcodes.OP_1NEGATE])

    return _op_push(data_len) + data


def add_number_to_script(i: int) -> bytes:
    return push_script(script_num_to_bytes(i))


def construct_script(items: Sequence[Union[int, bytes, opcodes]]) -> bytes:
    """Constructs bitcoin script from given items."""
    script = bytearray()
    for item in items:
        if isinstance(item, opcodes):
            script += bytes([item])
        elif type(item) is int:
            script += add_number_to_script(item)
        elif isinstance(item, (bytes, bytearray)):
            script += push_script(item)
        else:
            raise Exception(f'unexpected item for script: {item!r}')
    return bytes(script)


def construct_witness(items: Sequence[bytes]) -> bytes:
    """Constructs a serialized witness stack from the given items."""
    witness = bytearray()
    witness += var_int(len(items))
    for item in items:
        witness += var_str(item)
    return bytes(witness)


############ functions from pywallet #####################

def hash160_to_b58_address(h160: bytes, addrtype: int) -> str:
    s = bytes([addrtype]) + h160
    s = s + sha256d(s)[0:4]
    return base_encode(s, base=58)


def b58_address_to_hash160(addr: str) -> Tuple[int, bytes]:
    addr = to_bytes(addr, 'ascii')
    _bytes = DecodeBase58Check(addr)
    if len(_bytes) != 21:
        raise BaseDecodeError(f'expected 21 payload bytes in base58 address. got: {len(_bytes)}')
    return _bytes[0], _bytes[1:21]


def hash160_to_p2pkh(h160: bytes, *, net=None) -> str:
    if net is None: net = constants.net
    return hash160_to_b58_address(h160, net.ADDRTYPE_P2PKH)

def hash160_to_p2sh(h160: bytes, *, net=None) -> str:
    if net is None: net = constants.net
    return hash160_to_b58_address(h160, net.ADDRTYPE_P2SH)

def public_key_to_p2pkh(public_key: bytes, *, net=None) -> str:
    return hash160_to_p2pkh(hash_160(public_key), net=net)

def hash_to_segwit_addr(h: bytes, witver: int, *, net=None) -> str:
    if net is None: net = constants.net
    addr = segwit_addr.encode_segwit_address(net.SEGWIT_HRP, witver, h)
    assert addr is not None
    return addr

def public_key_to_p2wpkh(public_key: bytes, *, net=None) -> str:
    return hash_to_segwit_addr(hash_160(public_key), witver=0, net=net)

def p2wpkh_nested_script(public_key: bytes) -> bytes:
    """The P2SH redeem script of a nested segwit (p2wpkh-p2sh) output."""
    return construct_script([0, hash_160(public_key)])

def public_key_to_p2wpkh_p2sh(public_key: bytes, *, net=None) -> str:
    return hash160_to_p2sh(hash_160(p2wpkh_nested_script(public_key)), net=net)

def public_key_to_p2tr(public_key: bytes, *, net=None) -> str:
    output_pubkey = taproot_output_script(to_xonly(public_key))[2:]
    return hash_to_segwit_addr(output_pubkey, witver=1, net=net)


def pubkeyhash_to_p2pkh_script(pubkey_hash160: bytes) -> bytes:
    return construct_script([
        opcodes.OP_DUP,
        opcodes.OP_HASH160,
        pubkey_hash160,
        opcodes.OP_EQUALVERIFY,
        opcodes.OP_CHECKSIG
    ])


def scripthash_to_p2sh_script(script_hash160: bytes) -> bytes:
    return construct_script([opcodes.OP_HASH160, script_hash160, opcodes.OP_EQUAL])


class AddressKind(Enum):
    """Closed set of address types. P2SH is always taken to be P2SH-P2WPKH."""
    P2PKH = enum.auto()
    P2SH_P2WPKH = enum.auto()
    P2WPKH = enum.auto()
    P2WSH = enum.auto()
    P2TR = enum.auto()
    WITNESS_UNKNOWN = enum.auto()  # valid segwit address of a version/length we do not know

    def is_segwit(self) -> bool:
        return self not in (AddressKind.P2PKH, AddressKind.P2SH_P2WPKH)


class AddressInfo(NamedTuple):
    address: str
    kind: AddressKind
    net: Type[constants.AbstractNet]
    script_pubkey: bytes
    payload: bytes  # pubkey hash, script hash or witness program


def _witness_program_kind(witver: int, witprog: bytes) -> AddressKind:
    if witver == 0 and len(witprog) == 20:
        return AddressKind.P2WPKH
    if witver == 0 and len(witprog) == 32:
        return AddressKind.P2WSH
    if witver == 1 and len(witprog) == 32:
        return AddressKind.P2TR
    return AddressKind.WITNESS_UNKNOWN


def classify_address(addr: str) -> AddressInfo:
    """Parses addr on mainnet, testnet and regtest (in that order).
    Raises InvalidAddress if it parses on none of them.
    """
    if not isinstance(addr, str) or not addr:
        raise InvalidAddress(f"invalid bitcoin address: {addr!r}")
    for net in constants.NETS_LIST:
        decoded = segwit_addr.decode_segwit_address(net.SEGWIT_HRP, addr)
        if decoded is None:
            continue
        witver, witprog = decoded
        return AddressInfo(
            address=addr,
            kind=_witness_program_kind(witver, witprog),
            net=net,
            script_pubkey=construct_script([witver, witprog]),
            payload=witprog,
        )
    try:
        addrtype, h160 = b58_address_to_hash160(addr)
    except (BaseDecodeError, UnicodeEncodeError):
        raise InvalidAddress(f"invalid bitcoin address: {addr!r}") from None
    for net in constants.NETS_LIST:
        if addrtype == net.ADDRTYPE_P2PKH:
            return AddressInfo(addr, AddressKind.P2PKH, net, pubkeyhash_to_p2pkh_script(h160), h160)
        if addrtype == net.ADDRTYPE_P2SH:
            return AddressInfo(addr, AddressKind.P2SH_P2WPKH, net, scripthash_to_p2sh_script(h160), h160)
    raise InvalidAddress(f"unknown address type {addrtype} for {addr!r}")


def address_to_script(addr: str) -> bytes:
    return classify_address(addr).script_pubkey


def is_address(addr: str) -> bool:
    try:
        classify_address(addr)
    except InvalidAddress:
        return False
    return True


def pubkey_to_address(kind: AddressKind, public_key: bytes, *, net=None) -> str:
    """Derives the address of the given kind that public_key controls.
    Segwit kinds expect a compressed key.
    """
    func = _PUBKEY_TO_ADDRESS.get(kind)
    if func is None:
        raise BitcoinException(f"cannot derive a {kind.name} address from a single public key")
    return func(public_key, net=net)


_PUBKEY_TO_ADDRESS = {
    AddressKind.P2PKH: public_key_to_p2pkh,
    AddressKind.P2SH_P2WPKH: public_key_to_p2wpkh_p2sh,
    AddressKind.P2WPKH: public_key_to_p2wpkh,
    AddressKind.P2TR: public_key_to_p2tr,
}


__b58chars = b'123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz'
assert len(__b58chars) == 58
__b58chars_inv = inv_dict(dict(enumerate(__b58chars)))


class BaseDecodeError(BitcoinException): pass


def base_encode(v: bytes, *, base: int) -> str:
    """ encode v, which is a string of bytes, to base58."""
    assert_bytes(v)
    if base != 58:
        raise ValueError('not supported base: {}'.format(base))
    chars = __b58chars

    origlen = len(v)
    v = v.lstrip(b'\x00')
    newlen = len(v)

    num = int.from_bytes(v, byteorder='big')
    string = b""
    while num:
        num, idx = divmod(num, base)
        string = chars[idx:idx + 1] + string

    result = chars[0:1] * (origlen - newlen) + string
    return result.decode('ascii')


def base_decode(v: Union[bytes, str], *, base: int) -> bytes:
    """ decode v into a string of len bytes.

    based on the work of David Keijser in https://github.com/keis/base58
    """
    v = to_bytes(v, 'ascii')
    if base != 58:
        raise ValueError('not supported base: {}'.format(base))
    chars = __b58chars
    chars_inv = __b58chars_inv

    origlen = len(v)
    v = v.lstrip(chars[0:1])
    newlen = len(v)

    num = 0
    try:
        for char in v:
            num = num * base + chars_inv[char]
    except KeyError:
        raise BaseDecodeError('Forbidden character {} for base {}'.format(char, base))

    return num.to_bytes(origlen - newlen + (num.bit_length() + 7) // 8, 'big')


class InvalidChecksum(BaseDecodeError):
    pass


def EncodeBase58Check(vchIn: bytes) -> str:
    hash = sha256d(vchIn)
    return base_encode(vchIn + hash[0:4], base=58)


def DecodeBase58Check(psz: Union[bytes, str]) -> bytes:
    vchRet = base_decode(psz, base=58)
    payload = vchRet[0:-4]
    csum_found = vchRet[-4:]
    csum_calculated = sha256d(payload)[0:4]
    if csum_calculated != csum_found:
        raise InvalidChecksum(f'calculated {csum_calculated.hex()}, found {csum_found.hex()}')
    else:
        return payload


def serialize_privkey(secret: bytes, compressed: bool, *, net=None) -> str:
    if net is None: net = constants.net
    # we only export secrets inside curve range
    secret = ecc.ECPrivkey.normalize_secret_bytes(secret)
    prefix = bytes([net.WIF_PREFIX])
    suffix = b'\01' if compressed else b''
    return EncodeBase58Check(prefix + secret + suffix)


def deserialize_privkey(key: str, *, net=None) -> Tuple[bytes, bool]:
    """Parses a WIF private key for net. Returns (secret_bytes, compressed)."""
    if net is None: net = constants.net
    try:
        vch = DecodeBase58Check(key)
    except (BaseDecodeError, UnicodeEncodeError, TypeError) as e:
        neutered_privkey = str(key)[:3] + '..' + str(key)[-2:]
        raise InvalidPrivateKey(f"cannot deserialize privkey {neutered_privkey}") from e

    if not vch or vch[0] != net.WIF_PREFIX:
        raise InvalidPrivateKey(f'invalid prefix for {net.NET_NAME} WIF key')
    if len(vch) not in [33, 34]:
        raise InvalidPrivateKey('invalid vch len for WIF key: {}'.format(len(vch)))
    compressed = False
    if len(vch) == 34:
        if vch[33] == 0x01:
            compressed = True
        else:
            raise InvalidPrivateKey(f'invalid WIF key. length suggests compressed pubkey, '
                                    f'but last byte is {vch[33]} != 0x01')
    secret_bytes = vch[1:33]
    if not ecc.is_secret_within_curve_range(secret_bytes):
        raise InvalidPrivateKey('WIF secret is not within curve range')
    return secret_bytes, compressed


def is_private_key(key: str, *, net=None) -> bool:
    try:
        deserialize_privkey(key, net=net)
    except InvalidPrivateKey:
        return False
    return True

########### end pywallet functions #######################


def to_xonly(public_key: bytes) -> bytes:
    """Returns the 32-byte x-only form of a public key (32, 33 or 65 bytes)."""
    assert_bytes(public_key)
    if len(public_key) == 32:
        return bytes(public_key)
    if len(public_key) == 65:
        public_key = ecc.ECPubkey(public_key).get_public_key_bytes(compressed=True)
    if len(public_key) != 33:
        raise BitcoinException(f"unexpected public key length: {len(public_key)}")
    return bytes(public_key[1:])


def taproot_tweak_pubkey(pubkey32: bytes, h: bytes) -> Tuple[int, bytes]:
    assert isinstance(pubkey32, bytes), type(pubkey32)
    assert isinstance(h, bytes), type(h)
    assert len(pubkey32) == 32, len(pubkey32)
    int_from_bytes = lambda x: int.from_bytes(x, byteorder="big", signed=False)

    tweak = int_from_bytes(bip340_tagged_hash(b"TapTweak", pubkey32 + h))
    if tweak >= ecc.CURVE_ORDER:
        raise ValueError
    P = ecc.ECPubkey(b"\x02" + pubkey32)
    Q = P + (ecc.GENERATOR * tweak)
    return 0 if Q.has_even_y() else 1, Q.get_public_key_bytes(compressed=True)[1:]


def taproot_tweak_seckey(seckey0: bytes, h: bytes) -> bytes:
    assert isinstance(seckey0, bytes), type(seckey0)
    assert isinstance(h, bytes), type(h)
    assert len(seckey0) == 32, len(seckey0)
    int_from_bytes = lambda x: int.from_bytes(x, byteorder="big", signed=False)

    P = ecc.ECPrivkey(seckey0)
    seckey = P.secret_scalar if P.has_even_y() else ecc.CURVE_ORDER - P.secret_scalar
    pubkey32 = P.get_public_key_bytes(compressed=True)[1:]
    tweak = int_from_bytes(bip340_tagged_hash(b"TapTweak", pubkey32 + h))
    if tweak >= ecc.CURVE_ORDER:
        raise ValueError
    return int.to_bytes((seckey + tweak) % ecc.CURVE_ORDER, length=32, byteorder="big", signed=False)


def taproot_output_script(internal_pubkey: bytes) -> bytes:
    """Output script of a key-path only taproot output (empty merkle root)."""
    assert isinstance(internal_pubkey, bytes), type(internal_pubkey)
    assert len(internal_pubkey) == 32, len(internal_pubkey)
    _, output_pubkey = taproot_tweak_pubkey(internal_pubkey, b"")
    return construct_script([1, output_pubkey])


# message hashing
def hash_message(message: Union[bytes, str]) -> bytes:
    """BIP-322 message hash: tagged sha256 with tag "BIP0322-signed-message"."""
    return bip340_tagged_hash(BIP322_TAG, to_bytes(message, 'utf8'))


def usermessage_magic(message: bytes) -> bytes:
    length = var_int(len(message))
    return MESSAGE_MAGIC + length + message


def magic_hash(message: Union[bytes, str]) -> bytes:
    """Legacy (BIP-137) message hash. Note this is sha256d, unlike hash_message."""
    return sha256d(usermessage_magic(to_bytes(message, 'utf8')))
