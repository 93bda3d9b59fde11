from .version import BIP322_VERSION
from .util import (Bip322Error, InvalidAddress, UnsupportedAddressType, ScriptPathUnsupported,
                   InvalidSchnorrLength, InvalidSighashType, InvalidSignatureLength,
                   InvalidHeaderRange, KeyAddressMismatch, IntegerTooLarge, EmptyWitness,
                   EmptyBuffer, SerializationError, MalformedSignature, InvalidPrivateKey,
                   InvalidPublicKey, KeyRecoveryFailed, ERROR_CODES)
from .simple_config import SimpleConfig
from .bitcoin import hash_message, magic_hash, classify_address, AddressKind, AddressInfo
from .witness import WitnessStack
from .transaction import PseudoTransaction, build_to_spend, build_to_sign
from . import bip137
from .signer import Signer, sign_message
from .verifier import Verifier, WitnessShape, verify_message
from .logging import get_logger


__version__ = BIP322_VERSION
