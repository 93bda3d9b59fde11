from bip322 import bitcoin, constants
from bip322.bitcoin import (var_int, read_var_int, var_str, read_var_str, construct_script,
                            construct_witness, classify_address, AddressKind, is_address,
                            address_to_script, deserialize_privkey, serialize_privkey,
                            is_private_key, public_key_to_p2pkh, public_key_to_p2wpkh,
                            pubkey_to_address, hash_message, usermessage_magic, to_xonly,
                            opcodes, push_script, _op_push, MAX_VAR_INT, MESSAGE_MAGIC)
from bip322.crypto import hash_160, sha256d, bip340_tagged_hash, sha256
from bip322.util import (bfh, IntegerTooLarge, EmptyBuffer, SerializationError,
                         InvalidAddress, InvalidPrivateKey, BitcoinException)

from . import Bip322TestCase


# secp256k1 generator point
G_COMPRESSED = bfh('0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798')
G_UNCOMPRESSED = bfh('0479be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798'
                     '483ada7726a3c4655da4fbfc0e1108a8fd17b448a68554199c47d08ffb10d4b8')
# pubkey of L3VFeEujGtevx9w18HD1fhRbCH67Az2dpCymeRE1SoPK6XQtaN2k
PUBKEY_1 = bfh('02c7f12003196442943d8588e01aee840423cc54fc1521526a3b85c2b0cbd58872')


class Test_var_int(Bip322TestCase):

    def test_var_int(self):
        for i in range(0xfd):
            self.assertEqual(var_int(i), bfh("{:02x}".format(i)))

        self.assertEqual(var_int(0xfd), bfh("fdfd00"))
        self.assertEqual(var_int(0xfe), bfh("fdfe00"))
        self.assertEqual(var_int(0xff), bfh("fdff00"))
        self.assertEqual(var_int(0x1234), bfh("fd3412"))
        self.assertEqual(var_int(0xffff), bfh("fdffff"))
        self.assertEqual(var_int(0x10000), bfh("fe00000100"))
        self.assertEqual(var_int(0x12345678), bfh("fe78563412"))
        self.assertEqual(var_int(0xffffffff), bfh("feffffffff"))
        self.assertEqual(var_int(0x100000000), bfh("ff0000000001000000"))
        self.assertEqual(var_int(MAX_VAR_INT), bfh("ffffffffffffff0000"))

    def test_var_int_out_of_range(self):
        with self.assertRaises(IntegerTooLarge):
            var_int(MAX_VAR_INT + 1)
        with self.assertRaises(IntegerTooLarge):
            var_int(0x0123456789abcdef)
        with self.assertRaises(IntegerTooLarge):
            var_int(-1)

    def test_read_var_int(self):
        self.assertEqual((0, 1), read_var_int(bfh("00")))
        self.assertEqual((0xfc, 1), read_var_int(bfh("fc")))
        self.assertEqual((0xfd, 3), read_var_int(bfh("fdfd00")))
        self.assertEqual((0x12345678, 5), read_var_int(bfh("fe78563412")))
        self.assertEqual((0x100000000, 9), read_var_int(bfh("ff0000000001000000")))
        self.assertEqual((MAX_VAR_INT, 9), read_var_int(bfh("ffffffffffffff0000")))
        # offset, and trailing data is left alone
        self.assertEqual((0x1234, 3), read_var_int(bfh("aabbfd3412cc"), 2))

    def test_read_var_int_errors(self):
        with self.assertRaises(EmptyBuffer):
            read_var_int(b"")
        with self.assertRaises(EmptyBuffer):
            read_var_int(bfh("0102"), 2)
        with self.assertRaises(SerializationError):
            read_var_int(bfh("fd01"))
        with self.assertRaises(SerializationError):
            read_var_int(bfh("fe010203"))
        with self.assertRaises(SerializationError):
            read_var_int(bfh("ff01020304050607"))
        # values beyond 48 bits
        with self.assertRaises(IntegerTooLarge):
            read_var_int(bfh("ff0000000000000100"))
        with self.assertRaises(IntegerTooLarge):
            read_var_int(bfh("ffefcdab8967452301"))

    def test_var_str(self):
        self.assertEqual(bfh("00"), var_str(b""))
        self.assertEqual(bfh("03aabbcc"), var_str(bfh("aabbcc")))
        self.assertEqual(b"\xfd\x00\x01" + bytes(256), var_str(bytes(256)))

    def test_read_var_str(self):
        self.assertEqual((bfh("aabbcc"), 4), read_var_str(bfh("03aabbccdd")))
        self.assertEqual((b"", 1), read_var_str(bfh("00")))
        self.assertEqual((bfh("dd"), 2), read_var_str(bfh("03aabbcc01dd"), 4))
        with self.assertRaises(SerializationError):
            read_var_str(bfh("03aabb"))
        with self.assertRaises(EmptyBuffer):
            read_var_str(b"")


class Test_script(Bip322TestCase):

    def test_op_push(self):
        self.assertEqual(_op_push(0x00), bfh('00'))
        self.assertEqual(_op_push(0x4b), bfh('4b'))
        self.assertEqual(_op_push(0x4c), bfh('4c4c'))
        self.assertEqual(_op_push(0xff), bfh('4cff'))
        self.assertEqual(_op_push(0x100), bfh('4d0001'))
        self.assertEqual(_op_push(0x10000), bfh('4e00000100'))

    def test_push_script(self):
        self.assertEqual(push_script(b""), bytes([opcodes.OP_0]))
        self.assertEqual(push_script(b"\x00"), bytes([opcodes.OP_0]))
        self.assertEqual(push_script(b"\x01"), bytes([opcodes.OP_1]))
        self.assertEqual(push_script(b"\x10"), bytes([opcodes.OP_16]))
        self.assertEqual(push_script(b"\x81"), bytes([opcodes.OP_1NEGATE]))
        self.assertEqual(push_script(b"\x11"), bfh("0111"))
        self.assertEqual(push_script(bytes(32)), b"\x20" + bytes(32))

    def test_construct_script(self):
        h = hash_160(PUBKEY_1)
        self.assertEqual(b"\x00\x14" + h, construct_script([0, h]))
        self.assertEqual(b"\x76\xa9\x14" + h + b"\x88\xac", bitcoin.pubkeyhash_to_p2pkh_script(h))
        self.assertEqual(b"\xa9\x14" + h + b"\x87", bitcoin.scripthash_to_p2sh_script(h))
        self.assertEqual(bfh("6a"), construct_script([opcodes.OP_RETURN]))

    def test_construct_witness(self):
        self.assertEqual(bfh("00"), construct_witness([]))
        self.assertEqual(bfh("0201aa00"), construct_witness([bfh("aa"), b""]))


class Test_hashes(Bip322TestCase):

    def test_hash_message(self):
        self.assertEqual("c90c269c4f8fcbe6880f72a721ddfbf1914268a794cbb21cfafee13770ae19f1",
                         hash_message("").hex())
        self.assertEqual(hash_message("Hello World"), hash_message(b"Hello World"))
        self.assertNotEqual(hash_message("Hello World"), hash_message("Hello World "))

    def test_hash_message_is_tagged_sha256(self):
        tag_hash = sha256(b"BIP0322-signed-message")
        self.assertEqual(sha256(tag_hash + tag_hash + b"abc"), hash_message("abc"))
        self.assertEqual(bip340_tagged_hash(b"BIP0322-signed-message", b"abc"), hash_message("abc"))

    def test_usermessage_magic(self):
        self.assertEqual(MESSAGE_MAGIC + b"\x05hello", usermessage_magic(b"hello"))
        self.assertEqual(b"\x18Bitcoin Signed Message:\n\x00", usermessage_magic(b""))
        long_msg = b"a" * 300
        self.assertEqual(MESSAGE_MAGIC + b"\xfd\x2c\x01" + long_msg, usermessage_magic(long_msg))

    def test_magic_hash_is_double_sha256(self):
        self.assertEqual(sha256d(usermessage_magic(b"Electrum")), bitcoin.magic_hash("Electrum"))

    def test_hash_160(self):
        self.assertEqual("751e76e8199196d454941c45d1b3a323f1433bd6", hash_160(G_COMPRESSED).hex())


class Test_addresses(Bip322TestCase):

    def test_classify_p2wpkh(self):
        for addr, net in (("bc1q9vza2e8x573nczrlzms0wvx3gsqjx7vavgkx0l", constants.BitcoinMainnet),
                          ("tb1q9vza2e8x573nczrlzms0wvx3gsqjx7vaxwd45v", constants.BitcoinTestnet),
                          ("bcrt1q9vza2e8x573nczrlzms0wvx3gsqjx7vay85cr9", constants.BitcoinRegtest)):
            info = classify_address(addr)
            self.assertEqual(AddressKind.P2WPKH, info.kind)
            self.assertEqual(net, info.net)
            self.assertEqual(hash_160(PUBKEY_1), info.payload)
            self.assertEqual(b"\x00\x14" + hash_160(PUBKEY_1), info.script_pubkey)

    def test_classify_p2wpkh_uppercase(self):
        info = classify_address("BC1QW508D6QEJXTDG4Y5R3ZARVARY0C5XW7KV8F3T4")
        self.assertEqual(AddressKind.P2WPKH, info.kind)
        self.assertEqual(bfh("0014751e76e8199196d454941c45d1b3a323f1433bd6"), info.script_pubkey)

    def test_classify_p2tr(self):
        for addr, net in (("bc1ppv609nr0vr25u07u95waq5lucwfm6tde4nydujnu8npg4q75mr5sxq8lt3", constants.BitcoinMainnet),
                          ("tb1ppv609nr0vr25u07u95waq5lucwfm6tde4nydujnu8npg4q75mr5s3g3s37", constants.BitcoinTestnet),
                          ("bcrt1ppv609nr0vr25u07u95waq5lucwfm6tde4nydujnu8npg4q75mr5su3mkyy", constants.BitcoinRegtest)):
            info = classify_address(addr)
            self.assertEqual(AddressKind.P2TR, info.kind)
            self.assertEqual(net, info.net)
            self.assertEqual(34, len(info.script_pubkey))
            self.assertEqual(bfh("5120"), info.script_pubkey[:2])

    def test_classify_p2wsh(self):
        info = classify_address("bc1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3qccfmv3")
        self.assertEqual(AddressKind.P2WSH, info.kind)
        self.assertEqual(bfh("0020"), info.script_pubkey[:2])

    def test_classify_witness_unknown(self):
        info = classify_address("bc1zw508d6qejxtdg4y5r3zarvaryvaxxpcs")
        self.assertEqual(AddressKind.WITNESS_UNKNOWN, info.kind)
        self.assertEqual(bytes([opcodes.OP_1 + 1]), info.script_pubkey[:1])

    def test_classify_p2sh(self):
        info = classify_address("3HSVzEhCFuH9Z3wvoWTexy7BMVVp3PjS6f")
        self.assertEqual(AddressKind.P2SH_P2WPKH, info.kind)
        self.assertEqual(constants.BitcoinMainnet, info.net)
        self.assertEqual(bfh("a914"), info.script_pubkey[:2])
        self.assertEqual(bfh("87"), info.script_pubkey[-1:])
        info = classify_address("2N8zi3ydDsMnVkqaUUe5Xav6SZqhyqEduap")
        self.assertEqual(AddressKind.P2SH_P2WPKH, info.kind)
        self.assertEqual(constants.BitcoinTestnet, info.net)

    def test_classify_p2pkh(self):
        info = classify_address("1F3sAm6ZtwLAUnj7d38pGFxtP3RVEvtsbV")
        self.assertEqual(AddressKind.P2PKH, info.kind)
        self.assertEqual(constants.BitcoinMainnet, info.net)
        self.assertEqual(25, len(info.script_pubkey))
        # regtest shares the base58 prefixes with testnet
        info = classify_address("muZpTpBYhxmRFuCjLc7C6BBDF32C8XVJUi")
        self.assertEqual(AddressKind.P2PKH, info.kind)
        self.assertEqual(constants.BitcoinTestnet, info.net)

    def test_classify_invalid(self):
        for addr in ("",
                     "bc1apv609nr0vr25u07u95waq5lucwfm6tde4nydujnu8npg4q75mr5sxq8lt3",
                     "bc1q9vza2e8x573nczrlzms0wvx3gsqjx7vavgkx0la",
                     "bc1ppv609nr0vr25u07u95waq5lucwfm6tde4nydujnu8npg4q75mr5sxq8lt3a",
                     "1F3sAm6ZtwLAUnj7d38pGFxtP3RVEvtsbVa",
                     "3HSVzEhCFuH9Z3wvoWTexy7BMVVp3PjS6fa",
                     "not an address",
                     "1F3sAm6ZtwLAUnj7d38pGFxtP3RVEvtsb0"):
            with self.subTest(addr=addr):
                with self.assertRaises(InvalidAddress):
                    classify_address(addr)
                self.assertFalse(is_address(addr))

    def test_address_to_script(self):
        self.assertEqual(bfh("0014751e76e8199196d454941c45d1b3a323f1433bd6"),
                         address_to_script("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"))

    def test_pubkey_to_address(self):
        self.assertEqual("1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH", public_key_to_p2pkh(G_COMPRESSED))
        self.assertEqual("1EHNa6Q4Jz2uvNExL497mE43ikXhwF6kZm", public_key_to_p2pkh(G_UNCOMPRESSED))
        self.assertEqual("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4", public_key_to_p2wpkh(G_COMPRESSED))
        self.assertEqual("bc1q9vza2e8x573nczrlzms0wvx3gsqjx7vavgkx0l",
                         pubkey_to_address(AddressKind.P2WPKH, PUBKEY_1))
        self.assertEqual("tb1q9vza2e8x573nczrlzms0wvx3gsqjx7vaxwd45v",
                         pubkey_to_address(AddressKind.P2WPKH, PUBKEY_1, net=constants.BitcoinTestnet))
        self.assertEqual("bc1ppv609nr0vr25u07u95waq5lucwfm6tde4nydujnu8npg4q75mr5sxq8lt3",
                         pubkey_to_address(AddressKind.P2TR, PUBKEY_1))
        self.assertEqual("bcrt1ppv609nr0vr25u07u95waq5lucwfm6tde4nydujnu8npg4q75mr5su3mkyy",
                         pubkey_to_address(AddressKind.P2TR, PUBKEY_1, net=constants.BitcoinRegtest))
        self.assertEqual("14vV3aCHBeStb5bkenkNHbe2YAFinYdXgc",
                         pubkey_to_address(AddressKind.P2PKH, PUBKEY_1))
        with self.assertRaises(BitcoinException):
            pubkey_to_address(AddressKind.P2WSH, PUBKEY_1)

    def test_to_xonly(self):
        self.assertEqual(G_COMPRESSED[1:], to_xonly(G_COMPRESSED))
        self.assertEqual(G_COMPRESSED[1:], to_xonly(G_UNCOMPRESSED))
        self.assertEqual(G_COMPRESSED[1:], to_xonly(G_COMPRESSED[1:]))
        with self.assertRaises(BitcoinException):
            to_xonly(bytes(20))


class Test_addresses_testnet(Bip322TestCase):
    TESTNET = True

    def test_pubkey_to_address_uses_selected_network(self):
        self.assertEqual("mjSSLdHFzft9NC5NNMik7WrMQ9rRhMhNpT",
                         pubkey_to_address(AddressKind.P2PKH, PUBKEY_1))
        self.assertEqual("tb1q9vza2e8x573nczrlzms0wvx3gsqjx7vaxwd45v",
                         pubkey_to_address(AddressKind.P2WPKH, PUBKEY_1))

    def test_classify_does_not_depend_on_selected_network(self):
        info = classify_address("bc1q9vza2e8x573nczrlzms0wvx3gsqjx7vavgkx0l")
        self.assertEqual(constants.BitcoinMainnet, info.net)


class Test_keyImport(Bip322TestCase):

    def test_deserialize_privkey(self):
        secret, compressed = deserialize_privkey("KwDiBf89QgGbjEhKnhXJuH7LrciVrZi3qYjgd9M7rFU73sVHnoWn")
        self.assertEqual(bytes(31) + b"\x01", secret)
        self.assertTrue(compressed)
        secret, compressed = deserialize_privkey("5HpHagT65TZzG1PH3CSu63k8DbpvD8s5ip4nEB3kEsreAnchuDf")
        self.assertEqual(bytes(31) + b"\x01", secret)
        self.assertFalse(compressed)

    def test_deserialize_privkey_testnet(self):
        secret_main, _ = deserialize_privkey("L3VFeEujGtevx9w18HD1fhRbCH67Az2dpCymeRE1SoPK6XQtaN2k")
        secret_test, compressed = deserialize_privkey("cTrF79uahxMC7bQGWh2931vepWPWqS8KtF8EkqgWwv3KMGZNJ2yP",
                                                      net=constants.BitcoinTestnet)
        self.assertEqual(secret_main, secret_test)
        self.assertTrue(compressed)
        # same prefix as testnet
        secret_reg, _ = deserialize_privkey("cTrF79uahxMC7bQGWh2931vepWPWqS8KtF8EkqgWwv3KMGZNJ2yP",
                                            net=constants.BitcoinRegtest)
        self.assertEqual(secret_main, secret_reg)

    def test_deserialize_privkey_wrong_network(self):
        with self.assertRaises(InvalidPrivateKey):
            deserialize_privkey("L3VFeEujGtevx9w18HD1fhRbCH67Az2dpCymeRE1SoPK6XQtaN2k", net=constants.BitcoinTestnet)
        with self.assertRaises(InvalidPrivateKey):
            deserialize_privkey("cTrF79uahxMC7bQGWh2931vepWPWqS8KtF8EkqgWwv3KMGZNJ2yP")

    def test_deserialize_privkey_garbage(self):
        for key in ("", "not a key", "L3VFeEujGtevx9w18HD1fhRbCH67Az2dpCymeRE1SoPK6XQtaN2K",
                    "1F3sAm6ZtwLAUnj7d38pGFxtP3RVEvtsbV"):
            with self.subTest(key=key):
                with self.assertRaises(InvalidPrivateKey):
                    deserialize_privkey(key)
                self.assertFalse(is_private_key(key))

    def test_serialize_privkey(self):
        self.assertEqual("KwDiBf89QgGbjEhKnhXJuH7LrciVrZi3qYjgd9M7rFU73sVHnoWn",
                         serialize_privkey(bytes(31) + b"\x01", True))
        self.assertEqual("5HpHagT65TZzG1PH3CSu63k8DbpvD8s5ip4nEB3kEsreAnchuDf",
                         serialize_privkey(bytes(31) + b"\x01", False))
        secret, _ = deserialize_privkey("L3VFeEujGtevx9w18HD1fhRbCH67Az2dpCymeRE1SoPK6XQtaN2k")
        self.assertEqual("cTrF79uahxMC7bQGWh2931vepWPWqS8KtF8EkqgWwv3KMGZNJ2yP",
                         serialize_privkey(secret, True, net=constants.BitcoinTestnet))
