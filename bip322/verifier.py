# Copyright (C) 2024 The Electrum developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

import enum
from enum import Enum
from typing import TYPE_CHECKING, Union

import electrum_ecc as ecc

from . import bip137
from .bitcoin import AddressKind, AddressInfo, classify_address, p2wpkh_nested_script
from .crypto import hash_160
from .logging import Logger
from .transaction import (build_to_spend, build_to_sign, bip143_sighash, bip341_sighash,
                          PseudoTransaction, Sighash)
from .util import (MalformedSignature, SerializationError, EmptyBuffer, IntegerTooLarge,
                   InvalidSighashType, InvalidSchnorrLength, ScriptPathUnsupported,
                   UnsupportedAddressType)
from .witness import WitnessStack

if TYPE_CHECKING:
    from .simple_config import SimpleConfig


class WitnessShape(Enum):
    LEGACY = enum.auto()  # not a witness: 65 byte BIP-137 signature
    SEGWIT_V0_KEYHASH = enum.auto()  # [sig, compressed pubkey]
    TAPROOT_KEYPATH = enum.auto()  # [sig]
    TAPROOT_SCRIPTPATH = enum.auto()  # [..., script, control block]
    UNKNOWN = enum.auto()


def classify_witness(kind: AddressKind, witness: WitnessStack) -> WitnessShape:
    """Determines the spend shape of witness, for an output of the given kind.
    The key hash shape is recognized for every kind, taproot included.
    """
    if len(witness) == 2 and len(witness[1]) == 33 and witness[1][0] in (0x02, 0x03):
        return WitnessShape.SEGWIT_V0_KEYHASH
    if kind == AddressKind.P2TR:
        if len(witness) == 1:
            return WitnessShape.TAPROOT_KEYPATH
        if len(witness) > 1:
            return WitnessShape.TAPROOT_SCRIPTPATH
    return WitnessShape.UNKNOWN


def _has_sig65_shape(sig_bytes: bytes) -> bool:
    # a 65 byte witness (e.g. one 63 byte item) starts with a small item count, never a header byte
    return len(sig_bytes) == bip137.SIG65_LEN and sig_bytes[0] >= bip137.HEADER_MIN


class Verifier(Logger):
    """Verifies BIP-322 "simple" signatures and BIP-137 signatures.

    verify() returns False when a well-formed signature does not match,
    and raises a Bip322Error when the request itself cannot be processed
    (bad address, unsupported type, broken encoding).
    """

    LOGGING_SHORTCUT = 'V'

    def __init__(self, config: 'SimpleConfig' = None):
        Logger.__init__(self)
        self.config = config

    def allow_extended_header(self) -> bool:
        return bool(self.config and self.config.BIP137_ALLOW_EXTENDED_HEADER)

    def strict_by_default(self) -> bool:
        return bool(self.config and self.config.BIP137_STRICT_VERIFICATION)

    def verify(
        self,
        address: str,
        message: Union[str, bytes],
        signature: Union[str, bytes],
        *,
        strict: bool = None,
    ) -> bool:
        info = classify_address(address)
        sig_bytes = bip137.decode_signature(signature)
        if info.kind == AddressKind.P2PKH or _has_sig65_shape(sig_bytes):
            if strict is None:
                strict = self.strict_by_default()
            return self.verify_legacy(info, message, sig_bytes, strict=strict)
        return self.verify_bip322(info, message, sig_bytes)

    def verify_legacy(self, info: AddressInfo, message, sig65: bytes, *, strict: bool = False) -> bool:
        self.logger.debug(f"legacy (BIP-137) verification for {info.address}")
        return bip137.verify_sig65(
            message, info, sig65,
            allow_extended=self.allow_extended_header(),
            strict=strict,
        )

    def verify_bip322(self, info: AddressInfo, message, serialized_witness: bytes) -> bool:
        try:
            witness = WitnessStack.deserialize(serialized_witness)
        except (SerializationError, EmptyBuffer, IntegerTooLarge) as e:
            raise MalformedSignature(f"cannot decode witness: {e}") from e
        shape = classify_witness(info.kind, witness)
        self.logger.debug(f"BIP-322 verification for {info.kind.name} {info.address}, witness shape {shape.name}")
        verify_func = _BIP322_VERIFY_FUNCS.get((info.kind, shape))
        if verify_func is None:
            raise UnsupportedAddressType(
                f"cannot verify a {shape.name} witness for {info.kind.name} address {info.address}")
        to_spend = build_to_spend(message, info.script_pubkey)
        return verify_func(self, info, to_spend, witness)

    def _verify_segwit_v0_keyhash(self, info: AddressInfo, to_spend: PseudoTransaction, witness: WitnessStack) -> bool:
        sig, public_key = witness
        if not sig or sig[-1] != Sighash.ALL:
            raise InvalidSighashType(f"segwit v0 signatures must use SIGHASH_ALL, got {sig[-1:].hex()!r}")
        try:
            sig64 = ecc.ecdsa_sig64_from_der_sig(sig[:-1])
        except Exception as e:
            raise MalformedSignature(f"signature is not valid DER: {e!r}") from e
        pubkey_hash = hash_160(public_key)
        if info.kind == AddressKind.P2SH_P2WPKH:
            redeem_script = p2wpkh_nested_script(public_key)
            if hash_160(redeem_script) != info.payload:
                return False
            to_sign = build_to_sign(to_spend.txid(), redeem_script, is_redeem_script=True)
        else:
            if pubkey_hash != info.payload:
                return False
            to_sign = build_to_sign(to_spend.txid(), info.script_pubkey)
        to_sign.add_witness(witness)
        try:
            pubkey = ecc.ECPubkey(public_key)
        except ecc.InvalidECPointException:
            return False
        msg_hash = bip143_sighash(to_sign, pubkey_hash)
        # note: like Bitcoin Core's verifymessage, the low-S rule is not enforced
        return pubkey.ecdsa_verify(sig64, msg_hash, enforce_low_s=False)

    def _verify_taproot_keypath(self, info: AddressInfo, to_spend: PseudoTransaction, witness: WitnessStack) -> bool:
        sig = witness[0]
        if len(sig) == 64:
            sighash = Sighash.DEFAULT
        elif len(sig) == 65:
            sighash = sig[-1]
            if sighash not in (Sighash.DEFAULT, Sighash.ALL):
                raise InvalidSighashType(f"taproot signatures must use SIGHASH_DEFAULT or SIGHASH_ALL, got {sighash}")
        else:
            raise InvalidSchnorrLength(f"schnorr signature is {len(sig)} bytes, expected 64 or 65")
        to_sign = build_to_sign(to_spend.txid(), info.script_pubkey)
        to_sign.add_witness(witness)
        try:
            output_key = ecc.ECPubkey(b"\x02" + info.script_pubkey[2:])
        except ecc.InvalidECPointException:
            return False
        msg_hash = bip341_sighash(to_sign, sighash)
        return output_key.schnorr_verify(sig[:64], msg_hash)

    def _reject_taproot_scriptpath(self, info: AddressInfo, to_spend: PseudoTransaction, witness: WitnessStack) -> bool:
        raise ScriptPathUnsupported(f"witness with {len(witness)} items is a script path spend")


# (address kind, witness shape) -> policy. Missing pairs are unsupported.
_BIP322_VERIFY_FUNCS = {
    (AddressKind.P2WPKH, WitnessShape.SEGWIT_V0_KEYHASH): Verifier._verify_segwit_v0_keyhash,
    (AddressKind.P2SH_P2WPKH, WitnessShape.SEGWIT_V0_KEYHASH): Verifier._verify_segwit_v0_keyhash,
    (AddressKind.P2TR, WitnessShape.TAPROOT_KEYPATH): Verifier._verify_taproot_keypath,
    (AddressKind.P2TR, WitnessShape.TAPROOT_SCRIPTPATH): Verifier._reject_taproot_scriptpath,
    # a key hash can never match a taproot program: False once the signature is well formed
    (AddressKind.P2TR, WitnessShape.SEGWIT_V0_KEYHASH): Verifier._verify_segwit_v0_keyhash,
}


def verify_message(
    address: str,
    message: Union[str, bytes],
    signature: Union[str, bytes],
    *,
    strict: bool = None,
    config: 'SimpleConfig' = None,
) -> bool:
    return Verifier(config).verify(address, message, signature, strict=strict)
