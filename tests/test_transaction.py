import electrum_ecc as ecc

from bip322.bitcoin import (address_to_script, hash_message, p2wpkh_nested_script, opcodes,
                            deserialize_privkey, to_xonly)
from bip322.crypto import hash_160
from bip322.transaction import (build_to_spend, build_to_sign, Sighash, PseudoTransaction,
                                TxInput, TxOutput, TxOutpoint, is_witness_program,
                                is_taproot_script, bip143_sighash)
from bip322.witness import WitnessStack
from bip322.util import bfh, EmptyWitness, InvalidSighashType, BitcoinException

from . import Bip322TestCase


P2WPKH_ADDR = "bc1q9vza2e8x573nczrlzms0wvx3gsqjx7vavgkx0l"
P2TR_ADDR = "bc1ppv609nr0vr25u07u95waq5lucwfm6tde4nydujnu8npg4q75mr5sxq8lt3"
PUBKEY_1 = bfh("02c7f12003196442943d8588e01aee840423cc54fc1521526a3b85c2b0cbd58872")


class Test_to_spend(Bip322TestCase):

    def test_txid_empty_message(self):
        tx = build_to_spend("", address_to_script(P2WPKH_ADDR))
        self.assertEqual("c5680aa69bb8d860bf82d4e9cd3504b55dde018de765a91bb566283c545a99a7", tx.txid())

    def test_txid_hello_world(self):
        tx = build_to_spend("Hello World", address_to_script(P2WPKH_ADDR))
        self.assertEqual("b79d196740ad5217771c1098fc4a4b51e0535c32236c71f1ea4d61a2d603352b", tx.txid())

    def test_structure(self):
        spk = address_to_script(P2WPKH_ADDR)
        tx = build_to_spend("Hello World", spk)
        self.assertEqual(0, tx.version)
        self.assertEqual(0, tx.locktime)
        self.assertEqual(1, len(tx.inputs()))
        self.assertEqual(1, len(tx.outputs()))
        self.assertEqual(TxOutpoint(txid=bytes(32), out_idx=0xffffffff), tx.txin.prevout)
        self.assertEqual(0, tx.txin.nsequence)
        self.assertEqual(bfh("0020") + hash_message("Hello World"), tx.txin.script_sig)
        self.assertEqual(spk, tx.txout.scriptpubkey)
        self.assertEqual(0, tx.txout.value)
        self.assertFalse(tx.is_segwit())

    def test_txid_depends_on_message_and_script(self):
        spk = address_to_script(P2WPKH_ADDR)
        self.assertNotEqual(build_to_spend("a", spk).txid(), build_to_spend("b", spk).txid())
        self.assertNotEqual(build_to_spend("a", spk).txid(),
                            build_to_spend("a", address_to_script(P2TR_ADDR)).txid())


class Test_to_sign(Bip322TestCase):

    def test_txid_empty_message(self):
        spk = address_to_script(P2WPKH_ADDR)
        to_spend = build_to_spend("", spk)
        to_sign = build_to_sign(to_spend.txid(), spk)
        self.assertEqual("1e9654e951a5ba44c8604c4de6c67fd78a27e81dcadcfe1edf638ba3aaebaed6", to_sign.txid())

    def test_txid_hello_world(self):
        spk = address_to_script(P2WPKH_ADDR)
        to_spend = build_to_spend("Hello World", spk)
        to_sign = build_to_sign(to_spend.txid(), spk)
        self.assertEqual("88737ae86f2077145f93cc4b153ae9a1cb8d56afa511988c149c5c8c9d93bddf", to_sign.txid())

    def test_txid_ignores_witness(self):
        spk = address_to_script(P2WPKH_ADDR)
        to_sign = build_to_sign(build_to_spend("Hello World", spk).txid(), spk)
        to_sign.add_witness(WitnessStack([bfh("aa"), PUBKEY_1]))
        self.assertEqual("88737ae86f2077145f93cc4b153ae9a1cb8d56afa511988c149c5c8c9d93bddf", to_sign.txid())

    def test_structure(self):
        spk = address_to_script(P2WPKH_ADDR)
        to_spend = build_to_spend("", spk)
        to_sign = build_to_sign(to_spend.txid(), spk)
        self.assertEqual(0, to_sign.version)
        self.assertEqual(0, to_sign.locktime)
        self.assertEqual(bfh(to_spend.txid()), to_sign.txin.prevout.txid)
        self.assertEqual(0, to_sign.txin.prevout.out_idx)
        self.assertEqual(0, to_sign.txin.nsequence)
        self.assertEqual(b"", to_sign.txin.script_sig)
        self.assertEqual(bytes([opcodes.OP_RETURN]), to_sign.txout.scriptpubkey)
        self.assertEqual(0, to_sign.txout.value)

    def test_nested_segwit(self):
        redeem_script = p2wpkh_nested_script(PUBKEY_1)
        to_sign = build_to_sign("00" * 32, redeem_script, is_redeem_script=True)
        self.assertEqual(bfh("16") + redeem_script, to_sign.txin.script_sig)
        self.assertEqual(bfh("a914") + hash_160(redeem_script) + bfh("87"), to_sign.txin.scriptpubkey)
        self.assertTrue(to_sign.txin.is_segwit())
        self.assertFalse(to_sign.txin.is_taproot())

    def test_witness_serialization(self):
        spk = address_to_script(P2WPKH_ADDR)
        to_sign = build_to_sign(build_to_spend("", spk).txid(), spk)
        with self.assertRaises(EmptyWitness):
            to_sign.serialize_witness()
        with self.assertRaises(EmptyWitness):
            to_sign.witness_to_base64()
        legacy_ser = to_sign.serialize_to_network()
        witness = WitnessStack([bfh("aa"), PUBKEY_1])
        to_sign.add_witness(witness)
        self.assertEqual(witness.serialize(), to_sign.serialize_witness())
        self.assertEqual(witness.to_base64(), to_sign.witness_to_base64())
        ser = to_sign.serialize_to_network()
        self.assertEqual(bfh("00000000" "0001"), ser[:6])
        self.assertEqual(legacy_ser, to_sign.serialize_to_network(include_witness=False))
        self.assertEqual(len(legacy_ser) + 2 + len(witness.serialize()), len(ser))
        with self.assertRaises(BitcoinException):
            to_sign.add_witness(witness)


class Test_sighash(Bip322TestCase):

    def test_is_valid(self):
        self.assertTrue(Sighash.is_valid(Sighash.ALL))
        self.assertFalse(Sighash.is_valid(Sighash.DEFAULT))
        self.assertTrue(Sighash.is_valid(Sighash.DEFAULT, is_taproot=True))
        self.assertTrue(Sighash.is_valid(Sighash.ALL, is_taproot=True))
        for sighash in (Sighash.NONE, Sighash.SINGLE, Sighash.ALL | Sighash.ANYONECANPAY, 0x42):
            self.assertFalse(Sighash.is_valid(sighash))
            self.assertFalse(Sighash.is_valid(sighash, is_taproot=True))

    def test_to_sigbytes(self):
        self.assertEqual(b"", Sighash.to_sigbytes(Sighash.DEFAULT))
        self.assertEqual(b"\x01", Sighash.to_sigbytes(Sighash.ALL))

    def test_preimage_rejects_other_sighash(self):
        spk = address_to_script(P2WPKH_ADDR)
        to_sign = build_to_sign(build_to_spend("", spk).txid(), spk)
        for sighash in (Sighash.DEFAULT, Sighash.NONE, Sighash.SINGLE, 0x81):
            with self.subTest(sighash=sighash):
                with self.assertRaises(InvalidSighashType):
                    to_sign.serialize_preimage(0, sighash=sighash)

    def test_taproot_preimage(self):
        spk = address_to_script(P2TR_ADDR)
        to_sign = build_to_sign(build_to_spend("", spk).txid(), spk)
        self.assertTrue(to_sign.txin.is_taproot())
        default = to_sign.serialize_preimage(0)
        self.assertEqual(bfh("0000"), default[:2])
        self.assertEqual(bfh("0001"), to_sign.serialize_preimage(0, sighash=Sighash.ALL)[:2])
        self.assertNotEqual(to_sign.sighash_digest(0), to_sign.sighash_digest(0, sighash=Sighash.ALL))
        with self.assertRaises(InvalidSighashType):
            to_sign.serialize_preimage(0, sighash=Sighash.SINGLE)

    def test_bip143_preimage(self):
        spk = address_to_script(P2WPKH_ADDR)
        to_sign = build_to_sign(build_to_spend("", spk).txid(), spk)
        preimage = to_sign.serialize_preimage(0)
        # version 0 and SIGHASH_ALL as 4 byte little endian
        self.assertEqual(bfh("00000000"), preimage[:4])
        self.assertEqual(bfh("01000000"), preimage[-4:])
        script_code = bfh("1976a914") + spk[2:] + bfh("88ac")
        self.assertIn(script_code + bytes(8), preimage)
        self.assertEqual(to_sign.sighash_digest(0), bip143_sighash(to_sign, spk[2:]))

    def test_legacy_preimage(self):
        spk = bfh("76a914") + hash_160(PUBKEY_1) + bfh("88ac")
        to_sign = build_to_sign(build_to_spend("", spk).txid(), spk)
        self.assertFalse(to_sign.txin.is_segwit())
        preimage = to_sign.serialize_preimage(0)
        self.assertIn(bytes([len(spk)]) + spk, preimage)
        self.assertEqual(bfh("01000000"), preimage[-4:])

    def test_sign_txin_checks_taproot_internal_key(self):
        secret, _ = deserialize_privkey("L3VFeEujGtevx9w18HD1fhRbCH67Az2dpCymeRE1SoPK6XQtaN2k")
        internal_key = to_xonly(ecc.ECPrivkey(secret).get_public_key_bytes(compressed=True))
        spk = address_to_script(P2TR_ADDR)
        txid = build_to_spend("Hello World", spk).txid()
        for key in (internal_key, None):
            with self.subTest(tap_internal_key=key):
                to_sign = build_to_sign(txid, spk, tap_internal_key=key)
                sig = to_sign.sign_txin(0, secret, sighash=Sighash.ALL)
                self.assertEqual(65, len(sig))
        other_key = bfh("79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798")
        to_sign = build_to_sign(txid, spk, tap_internal_key=other_key)
        with self.assertRaises(BitcoinException):
            to_sign.sign_txin(0, secret, sighash=Sighash.ALL)


class Test_script_predicates(Bip322TestCase):

    def test_is_witness_program(self):
        self.assertTrue(is_witness_program(address_to_script(P2WPKH_ADDR)))
        self.assertTrue(is_witness_program(address_to_script(P2TR_ADDR)))
        self.assertFalse(is_witness_program(bfh("76a914") + bytes(20) + bfh("88ac")))
        self.assertFalse(is_witness_program(bfh("0014") + bytes(19)))
        self.assertFalse(is_witness_program(b""))

    def test_is_taproot_script(self):
        self.assertTrue(is_taproot_script(address_to_script(P2TR_ADDR)))
        self.assertFalse(is_taproot_script(address_to_script(P2WPKH_ADDR)))
        self.assertFalse(is_taproot_script(bfh("0020") + bytes(32)))

    def test_txoutput_value(self):
        with self.assertRaises(ValueError):
            TxOutput(scriptpubkey=b"", value=-1)

    def test_pseudo_transaction_accessors(self):
        txin = TxInput(prevout=TxOutpoint(bytes(32), 0), scriptpubkey=b"")
        txout = TxOutput(scriptpubkey=b"\x6a", value=0)
        tx = PseudoTransaction(txin, txout)
        self.assertIs(txin, tx.txin)
        self.assertIs(txout, tx.txout)
        self.assertEqual((txin,), tuple(tx.inputs()))
        self.assertEqual(tx.serialize(), tx.serialize_to_network().hex())
