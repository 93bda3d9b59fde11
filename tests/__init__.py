import unittest
import threading
import tempfile
import shutil

import bip322
import bip322.logging
from bip322 import constants
from bip322.logging import Logger


bip322.logging._configure_stderr_logging(verbosity="*")


class Bip322TestCase(unittest.TestCase, Logger):
    """Base class for our unit tests."""

    TESTNET = False
    REGTEST = False
    # maxDiff = None  # for debugging

    # some unit tests are modifying globals... so we run sequentially:
    _test_lock = threading.Lock()

    def __init__(self, *args, **kwargs):
        Logger.__init__(self)
        unittest.TestCase.__init__(self, *args, **kwargs)

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        assert not (cls.REGTEST and cls.TESTNET), "regtest and testnet are mutually exclusive"
        if cls.REGTEST:
            constants.BitcoinRegtest.set_as_network()
        elif cls.TESTNET:
            constants.BitcoinTestnet.set_as_network()

    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        if cls.TESTNET or cls.REGTEST:
            constants.BitcoinMainnet.set_as_network()

    def setUp(self):
        have_lock = self._test_lock.acquire(timeout=0.1)
        if not have_lock:
            # This can happen when trying to run the tests in parallel,
            # or if a prior test raised during `setUp` and never released the lock.
            raise Exception("timed out waiting for test_lock")
        super().setUp()
        self.bip322_path = tempfile.mkdtemp(prefix="bip322-unittest-base-")

    def tearDown(self):
        shutil.rmtree(self.bip322_path)
        super().tearDown()
        self._test_lock.release()
