#!/usr/bin/env python
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

import sys
import argparse
import re
from functools import wraps
from typing import Optional, Dict, Sequence, Type

import electrum_ecc as ecc

from . import constants
from . import bip137
from .bitcoin import hash_message
from .logging import Logger, configure_logging
from .signer import Signer
from .simple_config import SimpleConfig, describe_config_vars
from .util import Bip322Error, BitcoinException, InvalidPublicKey, json_encode
from .verifier import Verifier
from .version import BIP322_VERSION


known_commands = {}  # type: Dict[str, Command]


class Command:
    def __init__(self, func, name):
        self.name = name
        self.parse_docstring(func.__doc__)
        varnames = func.__code__.co_varnames[1:func.__code__.co_argcount]
        self.defaults = func.__defaults__
        if self.defaults:
            n = len(self.defaults)
            self.params = list(varnames[:-n])
            self.options = list(varnames[-n:])
        else:
            self.params = list(varnames)
            self.options = []
            self.defaults = []

    def parse_docstring(self, docstring):
        docstring = docstring or ''
        docstring = docstring.strip()
        self.description = docstring
        self.arg_descriptions = {}
        self.arg_types = {}
        for x in re.finditer(r'arg:(.*?):(.*?):(.*)$', docstring, flags=re.MULTILINE):
            self.arg_descriptions[x.group(2)] = x.group(3)
            self.arg_types[x.group(2)] = x.group(1)
            self.description = self.description.replace(x.group(), '')
        self.short_description = self.description.split('.')[0]


def command(func):
    name = func.__name__
    known_commands[name] = Command(func, name)

    @wraps(func)
    def func_wrapper(*args, **kwargs):
        cmd_runner = args[0]  # type: Commands
        cmd_runner.logger.debug(f"running command {name}")
        return func(*args, **kwargs)
    return func_wrapper


class Commands(Logger):

    def __init__(self, *, config: 'SimpleConfig'):
        Logger.__init__(self)
        self.config = config
        self.signer = Signer(config)
        self.verifier = Verifier(config)

    def _run(self, method, args=(), **kwargs):
        """This wrapper is called from unit tests."""
        f = getattr(self, method)
        return f(*args, **kwargs)

    def _selected_net(self) -> Optional[Type[constants.AbstractNet]]:
        # only if a chain was explicitly selected; otherwise the address decides
        if any(self.config.get(chain.config_key()) for chain in constants.NETS_LIST):
            return self.config.get_selected_chain()
        return None

    @command
    def version(self):
        """Return the version of bip322."""
        return BIP322_VERSION

    @command
    def signmessage(self, address, message, privkey):
        """Sign a message with a private key. Use quotes if your message contains
        whitespaces. p2pkh addresses get a BIP-137 signature, segwit addresses a
        BIP-322 simple signature.

        arg:str:address:Bitcoin address (p2pkh, p2wpkh-p2sh, p2wpkh or p2tr)
        arg:str:message:Clear text message. Use quotes if it contains spaces.
        arg:str:privkey:Private key in WIF format
        """
        return self.signer.sign(privkey, address, message, net=self._selected_net())

    @command
    def verifymessage(self, address, message, signature, strict=False):
        """Verify a signature.

        arg:str:address:Bitcoin address
        arg:str:message:Clear text message. Use quotes if it contains spaces.
        arg:str:signature:The signature, base64-encoded.
        arg:bool:strict:Only accept BIP-137 signatures for the address type named by their header
        """
        return self.verifier.verify(address, message, signature, strict=True if strict else None)

    @command
    def hashmessage(self, message):
        """Return the BIP-322 tagged hash of a message, hex encoded.

        arg:str:message:Clear text message. Use quotes if it contains spaces.
        """
        return hash_message(message).hex()

    @command
    def getaddresses(self, pubkey):
        """Return every address a public key controls, per network.

        arg:str:pubkey:Public key, hex encoded (compressed or uncompressed)
        """
        try:
            pubkey_bytes = ecc.ECPubkey(bytes.fromhex(pubkey)).get_public_key_bytes(compressed=True)
        except (ValueError, ecc.InvalidECPointException) as e:
            raise InvalidPublicKey(f"invalid public key: {pubkey!r}") from e
        selected = self._selected_net()
        nets = [selected] if selected else constants.NETS_LIST
        ret = {}
        for net in nets:
            derived = bip137.derive_addresses(pubkey_bytes, net)
            ret[net.NET_NAME] = {kind.name.lower(): sorted(addrs) for kind, addrs in derived.items()}
        return ret


arg_types = {
    'str': str,
}


class ArgumentParser(argparse.ArgumentParser):
    """Reports usage errors as JSON on stdout, with exit status 2."""

    def error(self, message):
        print_error_json('usage_error', f"{self.prog}: {message}")
        sys.exit(2)


def print_error_json(code: str, message: str) -> None:
    print(json_encode({'error': {'code': code, 'message': message}}))


def add_global_options(parser, suppress=False):
    group = parser.add_argument_group('global options')
    group.add_argument(
        "-v", dest="verbosity", default=argparse.SUPPRESS if suppress else None,
        help=argparse.SUPPRESS if suppress else "Set verbosity (log levels)")
    group.add_argument(
        "-V", dest="verbosity_shortcuts", default=argparse.SUPPRESS if suppress else None,
        help=argparse.SUPPRESS if suppress else "Set verbosity (shortcut-filter list)")
    group.add_argument(
        "--config", dest="config_path", default=argparse.SUPPRESS if suppress else None,
        help=argparse.SUPPRESS if suppress else "path of a JSON config file")
    for chain in constants.NETS_LIST:
        if chain is constants.BitcoinMainnet:
            continue
        group.add_argument(
            f"--{chain.cli_flag()}", action="store_true", dest=chain.config_key(),
            default=argparse.SUPPRESS if suppress else False,
            help=argparse.SUPPRESS if suppress else f"Use {chain.NET_NAME} chain")


def get_parser():
    # create main parser
    config_keys = "\n".join(f"  {key}: {desc}" for key, desc in describe_config_vars().items())
    parser = ArgumentParser(
        prog="run_bip322",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Run 'run_bip322 <command> -h' to see the help for a command\n\n"
               "keys of the --config file:\n" + config_keys)
    parser.add_argument("--version", dest="cmd", action='store_const', const='version', help="Return the version of bip322.")
    add_global_options(parser)
    subparsers = parser.add_subparsers(dest='cmd', metavar='<command>')
    for cmdname in sorted(known_commands.keys()):
        cmd = known_commands[cmdname]
        p = subparsers.add_parser(
            cmdname,
            description=cmd.description,
            help=cmd.short_description,
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="Run 'run_bip322 -h' to see the list of global options",
        )
        for optname, default in zip(cmd.options, cmd.defaults):
            help = cmd.arg_descriptions.get(optname)
            action = "store_true" if default is False else 'store'
            if action == 'store':
                type_descriptor = cmd.arg_types.get(optname)
                _type = arg_types.get(type_descriptor, str)
                p.add_argument('--' + optname, dest=optname, action=action, default=default, help=help, type=_type)
            else:
                p.add_argument('--' + optname, dest=optname, action=action, default=default, help=help)
        add_global_options(p, suppress=True)

        for param in cmd.params:
            help = cmd.arg_descriptions.get(param)
            type_descriptor = cmd.arg_types.get(param)
            _type = arg_types.get(type_descriptor)
            p.add_argument(param, help=help, type=_type)
    return parser


def main(argv: Sequence[str] = None) -> int:
    parser = get_parser()
    args = parser.parse_args(argv)
    if args.cmd is None:
        parser.error("no command given")
    config_options = {k: v for k, v in vars(args).items() if v is not None}
    try:
        config = SimpleConfig(config_options)
    except ValueError as e:
        print_error_json('invalid_config', str(e))
        return 1
    configure_logging(config)

    cmdname = config_options['cmd']
    cmd = known_commands[cmdname]
    cmd_args = [config_options.get(x) for x in cmd.params]
    kwargs = {x: config_options[x] for x in cmd.options if x in config_options}
    cmd_runner = Commands(config=config)
    try:
        result = cmd_runner._run(cmdname, cmd_args, **kwargs)
    except Bip322Error as e:
        cmd_runner.logger.info(f"{cmdname} failed: {e!r}")
        print(json_encode({'error': e.to_json()}))
        return 1
    except BitcoinException as e:
        cmd_runner.logger.info(f"{cmdname} failed: {e!r}")
        print_error_json('error', str(e))
        return 1
    print(json_encode(result))
    return 0
