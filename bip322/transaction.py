#!/usr/bin/env python
#
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

# The two virtual transactions of BIP-322 ("to_spend" and "to_sign").
# These are never broadcast; they only exist so that a message signature
# can reuse the consensus signature hashing of the spent script type.

from typing import Sequence, Union, NamedTuple, Optional
from enum import IntEnum

import electrum_ecc as ecc

from .bitcoin import (var_int, construct_script, opcodes, hash_message,
                      pubkeyhash_to_p2pkh_script, scripthash_to_p2sh_script,
                      taproot_tweak_seckey)
from .crypto import sha256d, sha256, hash_160, bip340_tagged_hash
from .logging import get_logger
from .util import EmptyWitness, InvalidSighashType, BitcoinException
from .witness import WitnessStack


_logger = get_logger(__name__)


class Sighash(IntEnum):
    # note: this is not an IntFlag, as ALL|NONE != SINGLE

    DEFAULT = 0  # taproot only (bip-0341)
    ALL = 1
    NONE = 2
    SINGLE = 3
    ANYONECANPAY = 0x80

    @classmethod
    def is_valid(cls, sighash: int, *, is_taproot: bool = False) -> bool:
        # BIP-322 only allows committing to the whole to_sign transaction
        valid_flags = {Sighash.ALL}
        if is_taproot:
            valid_flags.add(Sighash.DEFAULT)
        return sighash in valid_flags

    @classmethod
    def to_sigbytes(cls, sighash: int) -> bytes:
        if sighash == Sighash.DEFAULT:
            return b""
        return sighash.to_bytes(length=1, byteorder="big")


def is_witness_program(script: bytes) -> bool:
    """Whether script is "<version opcode> <2-40 byte push>" (a segwit output script)."""
    if not (4 <= len(script) <= 42):
        return False
    version_op = script[0]
    if version_op != opcodes.OP_0 and not (opcodes.OP_1 <= version_op <= opcodes.OP_16):
        return False
    return script[1] + 2 == len(script)


def is_taproot_script(script: bytes) -> bool:
    return len(script) == 34 and script[0] == opcodes.OP_1 and script[1] == 32


class TxOutpoint(NamedTuple):
    txid: bytes  # endianness same as hex string displayed; reverse of tx serialization order
    out_idx: int

    def __str__(self) -> str:
        return f"""TxOutpoint("{self.to_str()}")"""

    def __repr__(self):
        return f"<{str(self)}>"

    def to_str(self) -> str:
        return f"{self.txid.hex()}:{self.out_idx}"

    def serialize_to_network(self) -> bytes:
        return self.txid[::-1] + int.to_bytes(self.out_idx, length=4, byteorder="little", signed=False)


class TxOutput:
    scriptpubkey: bytes
    value: int

    def __init__(self, *, scriptpubkey: bytes, value: int):
        if not isinstance(value, int) or value < 0:
            raise ValueError(f"bad txout value: {value!r}")
        self.scriptpubkey = bytes(scriptpubkey)
        self.value = value

    def serialize_to_network(self) -> bytes:
        buf = int.to_bytes(self.value, 8, byteorder="little", signed=False)
        script = self.scriptpubkey
        buf += var_int(len(script))
        buf += script
        return buf

    def __repr__(self):
        return f"<TxOutput script={self.scriptpubkey.hex()} value={self.value}>"


class TxInput:
    prevout: TxOutpoint
    script_sig: bytes
    nsequence: int
    witness: Optional[WitnessStack]
    value: int  # amount of the spent output, in satoshis
    scriptpubkey: bytes  # script of the spent output
    redeem_script: Optional[bytes]
    tap_internal_key: Optional[bytes]

    def __init__(self, *,
                 prevout: TxOutpoint,
                 scriptpubkey: bytes,
                 script_sig: bytes = b"",
                 nsequence: int = 0,
                 value: int = 0,
                 redeem_script: bytes = None,
                 tap_internal_key: bytes = None):
        self.prevout = prevout
        self.scriptpubkey = bytes(scriptpubkey)
        self.script_sig = bytes(script_sig)
        self.nsequence = nsequence
        self.value = value
        self.redeem_script = redeem_script
        self.tap_internal_key = tap_internal_key
        self.witness = None

    def is_taproot(self) -> bool:
        return is_taproot_script(self.scriptpubkey)

    def is_segwit(self) -> bool:
        if self.redeem_script is not None:
            return is_witness_program(self.redeem_script)
        return is_witness_program(self.scriptpubkey)

    def serialize_to_network(self, *, script_sig: bytes = None) -> bytes:
        if script_sig is None:
            script_sig = self.script_sig
        # Prev hash and index
        s = self.prevout.serialize_to_network()
        # Script length, script, sequence
        s += var_int(len(script_sig))
        s += script_sig
        s += int.to_bytes(self.nsequence, length=4, byteorder="little", signed=False)
        return s


class BIP143SharedTxDigestFields(NamedTuple):  # witness v0
    hashPrevouts: bytes
    hashSequence: bytes
    hashOutputs: bytes

    @classmethod
    def from_tx(cls, tx: 'PseudoTransaction') -> 'BIP143SharedTxDigestFields':
        inputs = tx.inputs()
        outputs = tx.outputs()
        hashPrevouts = sha256d(b''.join(txin.prevout.serialize_to_network() for txin in inputs))
        hashSequence = sha256d(b''.join(
            int.to_bytes(txin.nsequence, length=4, byteorder="little", signed=False)
            for txin in inputs))
        hashOutputs = sha256d(b''.join(o.serialize_to_network() for o in outputs))
        return BIP143SharedTxDigestFields(
            hashPrevouts=hashPrevouts,
            hashSequence=hashSequence,
            hashOutputs=hashOutputs,
        )


class BIP341SharedTxDigestFields(NamedTuple):  # witness v1
    sha_prevouts: bytes
    sha_amounts: bytes
    sha_scriptpubkeys: bytes
    sha_sequences: bytes
    sha_outputs: bytes

    @classmethod
    def from_tx(cls, tx: 'PseudoTransaction') -> 'BIP341SharedTxDigestFields':
        inputs = tx.inputs()
        outputs = tx.outputs()
        sha_prevouts = sha256(b''.join(txin.prevout.serialize_to_network() for txin in inputs))
        sha_amounts = sha256(b''.join(
            int.to_bytes(txin.value, length=8, byteorder="little", signed=False)
            for txin in inputs))
        sha_scriptpubkeys = sha256(b''.join(
            var_int(len(txin.scriptpubkey)) + txin.scriptpubkey
            for txin in inputs))
        sha_sequences = sha256(b''.join(
            int.to_bytes(txin.nsequence, length=4, byteorder="little", signed=False)
            for txin in inputs))
        sha_outputs = sha256(b''.join(o.serialize_to_network() for o in outputs))
        return BIP341SharedTxDigestFields(
            sha_prevouts=sha_prevouts,
            sha_amounts=sha_amounts,
            sha_scriptpubkeys=sha_scriptpubkeys,
            sha_sequences=sha_sequences,
            sha_outputs=sha_outputs,
        )


class PseudoTransaction:
    """A version 0, locktime 0 transaction with exactly one input and one output.

    Built once, then at most the witness of its input gets attached.
    """

    def __init__(self, txin: TxInput, txout: TxOutput):
        self.version = 0
        self.locktime = 0
        self._inputs = (txin,)
        self._outputs = (txout,)
        self._cached_txid = None

    def inputs(self) -> Sequence[TxInput]:
        return self._inputs

    def outputs(self) -> Sequence[TxOutput]:
        return self._outputs

    @property
    def txin(self) -> TxInput:
        return self._inputs[0]

    @property
    def txout(self) -> TxOutput:
        return self._outputs[0]

    def is_segwit(self) -> bool:
        return any(txin.witness is not None for txin in self._inputs)

    def add_witness(self, witness: WitnessStack, *, txin_index: int = 0) -> None:
        txin = self._inputs[txin_index]
        if txin.witness is not None:
            raise BitcoinException("witness already set")
        txin.witness = witness

    def serialize_witness(self, *, txin_index: int = 0) -> bytes:
        witness = self._inputs[txin_index].witness
        if witness is None:
            raise EmptyWitness("to_sign transaction has not been signed")
        return witness.serialize()

    def witness_to_base64(self, *, txin_index: int = 0) -> str:
        witness = self._inputs[txin_index].witness
        if witness is None:
            raise EmptyWitness("to_sign transaction has not been signed")
        return witness.to_base64()

    def serialize_to_network(self, *, include_witness: bool = True) -> bytes:
        """Serialize the transaction as used on the Bitcoin network.
        The segwit format is used iff include_witness and a witness is set.
        """
        nVersion = int.to_bytes(self.version, length=4, byteorder="little", signed=True)
        nLocktime = int.to_bytes(self.locktime, length=4, byteorder="little", signed=False)
        inputs = self.inputs()
        outputs = self.outputs()
        txins = var_int(len(inputs)) + b"".join(txin.serialize_to_network() for txin in inputs)
        txouts = var_int(len(outputs)) + b"".join(o.serialize_to_network() for o in outputs)
        if include_witness and self.is_segwit():
            marker = b"\x00"
            flag = b"\x01"
            witness = b"".join(
                (txin.witness or WitnessStack()).serialize() for txin in inputs)
            return nVersion + marker + flag + txins + txouts + witness + nLocktime
        return nVersion + txins + txouts + nLocktime

    def serialize(self) -> str:
        return self.serialize_to_network().hex()

    def txid(self) -> str:
        if self._cached_txid is None:
            ser = self.serialize_to_network(include_witness=False)
            self._cached_txid = sha256d(ser)[::-1].hex()
        return self._cached_txid

    def get_preimage_script(self, txin: TxInput, *, pubkey_hash: bytes = None) -> bytes:
        """scriptCode committed to by legacy and witness v0 sighashes.
        For keyhash spends this is the p2pkh template over pubkey_hash, which,
        if not given, is taken from the redeem script or the spent output.
        """
        if pubkey_hash is not None:
            return pubkeyhash_to_p2pkh_script(pubkey_hash)
        if txin.redeem_script is not None:
            # p2wpkh-p2sh: redeem script is 0x0014<pubkey_hash>
            return pubkeyhash_to_p2pkh_script(txin.redeem_script[2:])
        if txin.is_segwit():
            # p2wpkh: output script is 0x0014<pubkey_hash>
            return pubkeyhash_to_p2pkh_script(txin.scriptpubkey[2:])
        return txin.scriptpubkey

    def serialize_preimage(
        self,
        txin_index: int,
        *,
        sighash: int = None,
        pubkey_hash: bytes = None,
    ) -> bytes:
        nVersion = int.to_bytes(self.version, length=4, byteorder="little", signed=True)
        nLocktime = int.to_bytes(self.locktime, length=4, byteorder="little", signed=False)
        inputs = self.inputs()
        outputs = self.outputs()
        txin = inputs[txin_index]
        if sighash is None:
            sighash = Sighash.DEFAULT if txin.is_taproot() else Sighash.ALL
        if not Sighash.is_valid(sighash, is_taproot=txin.is_taproot()):
            raise InvalidSighashType(f"SIGHASH_FLAG ({sighash}) not allowed for this input")
        if txin.is_segwit():
            if txin.is_taproot():
                scache = BIP341SharedTxDigestFields.from_tx(self)
                sighash_epoch = b"\x00"
                hash_type = int.to_bytes(sighash, length=1, byteorder="little", signed=False)
                # txdata
                preimage_txdata = bytearray()
                preimage_txdata += nVersion
                preimage_txdata += nLocktime
                preimage_txdata += scache.sha_prevouts
                preimage_txdata += scache.sha_amounts
                preimage_txdata += scache.sha_scriptpubkeys
                preimage_txdata += scache.sha_sequences
                preimage_txdata += scache.sha_outputs
                # inputdata
                preimage_inputdata = bytearray()
                spend_type = bytes([0])  # (ext_flag * 2) + annex_present
                preimage_inputdata += spend_type
                preimage_inputdata += int.to_bytes(txin_index, length=4, byteorder="little", signed=False)
                return bytes(sighash_epoch + hash_type + preimage_txdata + preimage_inputdata)
            else:  # segwit (witness v0)
                scache = BIP143SharedTxDigestFields.from_tx(self)
                outpoint = txin.prevout.serialize_to_network()
                preimage_script = self.get_preimage_script(txin, pubkey_hash=pubkey_hash)
                scriptCode = var_int(len(preimage_script)) + preimage_script
                amount = int.to_bytes(txin.value, length=8, byteorder="little", signed=False)
                nSequence = int.to_bytes(txin.nsequence, length=4, byteorder="little", signed=False)
                nHashType = int.to_bytes(sighash, length=4, byteorder="little", signed=False)
                preimage = (nVersion + scache.hashPrevouts + scache.hashSequence + outpoint + scriptCode
                            + amount + nSequence + scache.hashOutputs + nLocktime + nHashType)
                return preimage
        else:  # legacy sighash (pre-segwit)
            preimage_script = self.get_preimage_script(txin, pubkey_hash=pubkey_hash)
            txins = var_int(len(inputs)) + b"".join(
                txin.serialize_to_network(script_sig=preimage_script if txin_index == k else b"")
                for k, txin in enumerate(inputs))
            txouts = var_int(len(outputs)) + b"".join(o.serialize_to_network() for o in outputs)
            nHashType = int.to_bytes(sighash, length=4, byteorder="little", signed=False)
            preimage = nVersion + txins + txouts + nLocktime + nHashType
            return preimage

    def sighash_digest(
        self,
        txin_index: int = 0,
        *,
        sighash: int = None,
        pubkey_hash: bytes = None,
    ) -> bytes:
        """The 32 byte message a signature for txin_index commits to."""
        pre_hash = self.serialize_preimage(txin_index, sighash=sighash, pubkey_hash=pubkey_hash)
        if self._inputs[txin_index].is_taproot():
            return bip340_tagged_hash(b"TapSighash", pre_hash)
        return sha256d(pre_hash)

    def sign_txin(
        self,
        txin_index: int,
        privkey_bytes: bytes,
        *,
        sighash: int = None,
    ) -> bytes:
        """Returns a signature with the sighash byte appended:
        a DER encoded ECDSA sig, or a 64 byte schnorr sig for taproot.
        For taproot, privkey_bytes is the secret of the internal key.
        """
        txin = self._inputs[txin_index]
        if txin.is_taproot():
            if sighash is None:
                sighash = Sighash.DEFAULT
            if txin.tap_internal_key is not None:
                internal_key = ecc.ECPrivkey(privkey_bytes).get_public_key_bytes(compressed=True)[1:]
                if internal_key != txin.tap_internal_key:
                    raise BitcoinException("private key does not match the taproot internal key")
            output_privkey = ecc.ECPrivkey(taproot_tweak_seckey(privkey_bytes, b""))
            if output_privkey.get_public_key_bytes(compressed=True)[1:] != txin.scriptpubkey[2:]:
                raise BitcoinException("tweaked key does not match the taproot output key")
            msg_hash = self.sighash_digest(txin_index, sighash=sighash)
            sig = output_privkey.schnorr_sign(msg_hash)
        else:
            if sighash is None:
                sighash = Sighash.ALL
            privkey = ecc.ECPrivkey(privkey_bytes)
            pubkey_hash = hash_160(privkey.get_public_key_bytes(compressed=True))
            msg_hash = self.sighash_digest(txin_index, sighash=sighash, pubkey_hash=pubkey_hash)
            sig = privkey.ecdsa_sign(msg_hash, sigencode=ecc.ecdsa_der_sig_from_r_and_s)
        return sig + Sighash.to_sigbytes(sighash)


def build_to_spend(message: Union[bytes, str], script_pubkey: bytes) -> PseudoTransaction:
    """The virtual transaction committing to the message and paying the challenge script."""
    message_hash = hash_message(message)
    txin = TxInput(
        prevout=TxOutpoint(txid=bytes(32), out_idx=0xffffffff),
        scriptpubkey=b"",
        script_sig=construct_script([opcodes.OP_0, message_hash]),
        nsequence=0,
    )
    txout = TxOutput(scriptpubkey=script_pubkey, value=0)
    tx = PseudoTransaction(txin, txout)
    _logger.debug(f"to_spend {tx.txid()} for message hash {message_hash.hex()}")
    return tx


def build_to_sign(
    to_spend_id: str,
    witness_script: bytes,
    *,
    is_redeem_script: bool = False,
    tap_internal_key: bytes = None,
) -> PseudoTransaction:
    """The virtual transaction spending to_spend's output into an OP_RETURN.

    witness_script is the script of the output being spent, or, with is_redeem_script,
    the redeem script of a p2sh-wrapped output (it is then also pushed in the scriptSig).
    """
    prevout = TxOutpoint(txid=bytes.fromhex(to_spend_id), out_idx=0)
    if is_redeem_script:
        txin = TxInput(
            prevout=prevout,
            scriptpubkey=scripthash_to_p2sh_script(hash_160(witness_script)),
            script_sig=construct_script([witness_script]),
            redeem_script=witness_script,
        )
    else:
        txin = TxInput(
            prevout=prevout,
            scriptpubkey=witness_script,
            tap_internal_key=tap_internal_key,
        )
    txout = TxOutput(scriptpubkey=bytes([opcodes.OP_RETURN]), value=0)
    return PseudoTransaction(txin, txout)


def bip143_sighash(tx: PseudoTransaction, pubkey_hash: bytes) -> bytes:
    """SIGHASH_ALL witness v0 digest of tx's input, for a key hashing to pubkey_hash."""
    return tx.sighash_digest(0, sighash=Sighash.ALL, pubkey_hash=pubkey_hash)


def bip341_sighash(tx: PseudoTransaction, sighash: int = Sighash.DEFAULT) -> bytes:
    """Taproot key path digest of tx's input."""
    return tx.sighash_digest(0, sighash=sighash)
