# Copyright (C) 2024 The Electrum developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

import base64
from typing import TYPE_CHECKING, Union, Tuple

import electrum_ecc as ecc

from . import bip137
from .bitcoin import (AddressKind, AddressInfo, classify_address, deserialize_privkey,
                      pubkey_to_address, p2wpkh_nested_script, to_xonly)
from .logging import Logger
from .transaction import build_to_spend, build_to_sign, PseudoTransaction, Sighash
from .util import InvalidPrivateKey, KeyAddressMismatch, UnsupportedAddressType
from .witness import WitnessStack

if TYPE_CHECKING:
    from .simple_config import SimpleConfig


class Signer(Logger):
    """Produces BIP-322 "simple" signatures, or BIP-137 ones for p2pkh addresses."""

    LOGGING_SHORTCUT = 'S'

    def __init__(self, config: 'SimpleConfig' = None):
        Logger.__init__(self)
        self.config = config

    def sign(
        self,
        private_key: Union[str, bytes],
        address: str,
        message: Union[str, bytes],
        *,
        net=None,
    ) -> str:
        """Signs message for address. Returns the base64 encoded signature.

        private_key is a WIF string, or 32 raw secret bytes (compressed pubkey).
        net is the network the WIF is for, and defaults to the network of address.
        """
        info = classify_address(address)
        if net is None:
            net = info.net
        sign_func = _SIGN_FUNCS[info.kind]
        if sign_func is None:
            raise UnsupportedAddressType(f"cannot sign a message for {info.kind.name} address {address}")
        privkey, compressed = load_private_key(private_key, net=net)
        public_key = privkey.get_public_key_bytes(compressed=compressed)
        if pubkey_to_address(info.kind, public_key, net=info.net) != _normalize(info):
            raise KeyAddressMismatch(f"private key cannot sign messages for {address}")
        self.logger.debug(f"signing message for {info.kind.name} address {address}")
        return sign_func(self, privkey, public_key, info, message)

    def _sign_p2pkh(self, privkey, public_key, info, message) -> str:
        compressed = len(public_key) == 33
        sig65 = bip137.sign(message, privkey, compressed=compressed, family=AddressKind.P2PKH)
        return base64.b64encode(sig65).decode('ascii')

    def _sign_p2wpkh_p2sh(self, privkey, public_key, info, message) -> str:
        to_spend = build_to_spend(message, info.script_pubkey)
        redeem_script = p2wpkh_nested_script(public_key)
        to_sign = build_to_sign(to_spend.txid(), redeem_script, is_redeem_script=True)
        return self._finalize_ecdsa(to_sign, privkey, public_key)

    def _sign_p2wpkh(self, privkey, public_key, info, message) -> str:
        to_spend = build_to_spend(message, info.script_pubkey)
        to_sign = build_to_sign(to_spend.txid(), info.script_pubkey)
        return self._finalize_ecdsa(to_sign, privkey, public_key)

    def _sign_p2tr(self, privkey, public_key, info, message) -> str:
        to_spend = build_to_spend(message, info.script_pubkey)
        internal_key = to_xonly(public_key)
        to_sign = build_to_sign(to_spend.txid(), info.script_pubkey, tap_internal_key=internal_key)
        # SIGHASH_ALL is explicit, so the sighash byte is appended
        sig = to_sign.sign_txin(0, privkey.get_secret_bytes(), sighash=Sighash.ALL)
        to_sign.add_witness(WitnessStack([sig]))
        return to_sign.witness_to_base64()

    def _finalize_ecdsa(self, to_sign: PseudoTransaction, privkey: ecc.ECPrivkey, public_key: bytes) -> str:
        sig = to_sign.sign_txin(0, privkey.get_secret_bytes(), sighash=Sighash.ALL)
        to_sign.add_witness(WitnessStack([sig, public_key]))
        return to_sign.witness_to_base64()


# every AddressKind needs an entry; None means signing is not supported
_SIGN_FUNCS = {
    AddressKind.P2PKH: Signer._sign_p2pkh,
    AddressKind.P2SH_P2WPKH: Signer._sign_p2wpkh_p2sh,
    AddressKind.P2WPKH: Signer._sign_p2wpkh,
    AddressKind.P2TR: Signer._sign_p2tr,
    AddressKind.P2WSH: None,
    AddressKind.WITNESS_UNKNOWN: None,
}
assert set(_SIGN_FUNCS) == set(AddressKind), "missing signing policy for an AddressKind"


def _normalize(info: AddressInfo) -> str:
    # bech32 addresses may be given in upper case
    return info.address.lower() if info.kind.is_segwit() else info.address


def load_private_key(private_key: Union[str, bytes], *, net=None) -> Tuple[ecc.ECPrivkey, bool]:
    """Returns (privkey, compressed) for a WIF string or 32 raw secret bytes."""
    if isinstance(private_key, (bytes, bytearray)):
        if len(private_key) != 32 or not ecc.is_secret_within_curve_range(bytes(private_key)):
            raise InvalidPrivateKey("raw private key must be 32 bytes within curve range")
        return ecc.ECPrivkey(bytes(private_key)), True
    if not isinstance(private_key, str):
        raise InvalidPrivateKey(f"unexpected private key type: {type(private_key)}")
    secret, compressed = deserialize_privkey(private_key.strip(), net=net)
    return ecc.ECPrivkey(secret), compressed


def sign_message(
    private_key: Union[str, bytes],
    address: str,
    message: Union[str, bytes],
    *,
    net=None,
    config: 'SimpleConfig' = None,
) -> str:
    return Signer(config).sign(private_key, address, message, net=net)
