import json
import threading
import os
import stat
from typing import Union, Optional, Dict, Sequence, Any, Callable, Type, Set

from copy import deepcopy

from . import constants
from .logging import get_logger, Logger


_logger = get_logger(__name__)


_config_var_from_key = {}  # type: Dict[str, 'ConfigVar']


class ConfigVar(property):

    def __init__(
        self,
        key: str,
        *,
        default: Union[Any, Callable[['SimpleConfig'], Any]],  # typically a literal, but can also be a callable
        type_=None,
        short_desc: Callable[[], str] = None,
    ):
        self._key = key
        self._default = default
        self._type = type_
        assert short_desc is None or callable(short_desc)
        self._short_desc = short_desc
        property.__init__(self, self._get_config_value, self._set_config_value)
        assert key not in _config_var_from_key, f"duplicate config key str: {key!r}"
        _config_var_from_key[key] = self

    def _get_config_value(self, config: 'SimpleConfig'):
        with config.lock:
            if config.is_set(self._key):
                value = config.get(self._key)
                # type-check
                if self._type is not None:
                    assert value is not None, f"got None for key={self._key!r}"
                    try:
                        value = self._type(value)
                    except Exception as e:
                        raise ValueError(
                            f"ConfigVar.get type-check and auto-conversion failed. "
                            f"key={self._key!r}. type={self._type}. value={value!r}") from e
            else:
                d = self._default
                value = d(config) if callable(d) else d
            return value

    def _set_config_value(self, config: 'SimpleConfig', value, *, save=False):
        if self._type is not None and value is not None:
            if not isinstance(value, self._type):
                raise ValueError(
                    f"ConfigVar.set type-check failed. "
                    f"key={self._key!r}. type={self._type}. value={value!r}")
        config.set_key(self._key, value, save=save)

    def key(self) -> str:
        return self._key

    def get_default_value(self) -> Any:
        return self._default

    def get_short_desc(self) -> Optional[str]:
        desc = self._short_desc
        return desc() if desc else None

    def __repr__(self):
        return f"<ConfigVar key={self._key!r}>"

    def __deepcopy__(self, memo):
        # We can be considered ~stateless. State is stored in the config, which is external.
        return self


class SimpleConfig(Logger):
    """
    The SimpleConfig class is responsible for handling operations involving
    configuration files.

    There are two different sources of possible configuration values:
        1. Command line options.
        2. User configuration (a JSON file, only if a path is given)
    They are taken in order (1. overrides config options set in 2.)
    The user config file is only written by an explicit save_user_config().
    """

    def __init__(self, options=None, read_user_config_function=None):
        if options is None:
            options = {}
        for config_key in options:
            assert isinstance(config_key, str), f"{config_key=!r} has type={type(config_key)}, expected str"

        Logger.__init__(self)

        # This lock needs to be acquired for updating and reading the config in
        # a thread-safe way.
        self.lock = threading.RLock()

        # for dependency injection when testing
        if read_user_config_function is None:
            read_user_config_function = read_user_config

        # The command line options
        self.cmdline_options = deepcopy(options)
        self.path = self.cmdline_options.pop('config_path', None)
        self.user_config = read_user_config_function(self.path)
        self._not_modifiable_keys = set()  # type: Set[str]

        self._init_done = True

    def list_config_vars(self) -> Sequence[str]:
        return list(sorted(_config_var_from_key.keys()))

    def get_selected_chain(self) -> Type[constants.AbstractNet]:
        selected_chains = [
            chain for chain in constants.NETS_LIST
            if self.get(chain.config_key())]
        if selected_chains:
            # note: if multiple are selected, we just pick one deterministically random
            return selected_chains[0]
        return constants.BitcoinMainnet

    def set_key(self, key: Union[str, ConfigVar], value, *, save=False) -> None:
        """Set the value for an arbitrary string config key.
        note: try to use explicit predefined ConfigVars instead of this method, whenever possible.
        """
        if isinstance(key, ConfigVar):
            key = key.key()
        assert isinstance(key, str), key
        if not self.is_modifiable(key):
            self.logger.warning(f"not changing config key '{key}' set on the command line")
            return
        try:
            json.dumps(key)
            json.dumps(value)
        except TypeError:
            self.logger.info(f"json error: cannot save {repr(key)} ({repr(value)})")
            return
        with self.lock:
            if value is not None:
                self.user_config[key] = value
            else:
                self.user_config.pop(key, None)
            if save:
                self.save_user_config()

    def get(self, key: str, default=None) -> Any:
        """Get the value for an arbitrary string config key.
        note: try to use explicit predefined ConfigVars instead of this method, whenever possible.
        """
        assert isinstance(key, str), key
        with self.lock:
            out = self.cmdline_options.get(key)
            if out is None:
                out = self.user_config.get(key, default)
        return out

    def is_set(self, key: Union[str, ConfigVar]) -> bool:
        """Returns whether the config key has any explicit value set/defined."""
        if isinstance(key, ConfigVar):
            key = key.key()
        assert isinstance(key, str), key
        return self.get(key, default=...) is not ...

    def is_modifiable(self, key: Union[str, ConfigVar]) -> bool:
        if isinstance(key, ConfigVar):
            key = key.key()
        return (key not in self.cmdline_options
                and key not in self._not_modifiable_keys)

    def make_key_not_modifiable(self, key: Union[str, ConfigVar]) -> None:
        if isinstance(key, ConfigVar):
            key = key.key()
        assert isinstance(key, str), key
        self._not_modifiable_keys.add(key)

    def save_user_config(self):
        if not self.path:
            return
        with self.lock:
            s = json.dumps(self.user_config, indent=4, sort_keys=True)
        with open(self.path, "w", encoding='utf-8') as f:
            os.chmod(self.path, stat.S_IREAD | stat.S_IWRITE)  # set restrictive perms *before* we write data
            f.write(s)

    def __setattr__(self, name, value):
        """Disallows setting instance attributes outside __init__.

        The point is to make the following code raise:
        >>> config.BIP137_STRICT_VERIFICATON = True
        (i.e. catch mistyped or non-existent ConfigVars)
        """
        # If __init__ not finished yet, or this field already exists, set it:
        if not getattr(self, "_init_done", False) or hasattr(self, name):
            return super().__setattr__(name, value)
        raise AttributeError(
            f"Tried to define new instance attribute for config: {name=!r}. "
            "Did you perhaps mistype a ConfigVar?"
        )

    # config variables ----->
    BIP137_ALLOW_EXTENDED_HEADER = ConfigVar(
        'bip137_allow_extended_header', default=False, type_=bool,
        short_desc=lambda: "Accept BIP-137 header bytes 43-46 (p2tr)",
    )
    BIP137_STRICT_VERIFICATION = ConfigVar(
        'bip137_strict_verification', default=False, type_=bool,
        short_desc=lambda: "Only accept a BIP-137 signature for the address type named by its header",
    )
    LOG_VERBOSITY = ConfigVar(
        'verbosity', default='', type_=str,
        short_desc=lambda: "Log levels, same as -v",
    )
    LOG_VERBOSITY_SHORTCUTS = ConfigVar(
        'verbosity_shortcuts', default='', type_=str,
        short_desc=lambda: "Logger shortcut filter, same as -V",
    )


def describe_config_vars() -> Dict[str, str]:
    """Maps each config key to its short description."""
    return {key: cv.get_short_desc() or '' for key, cv in sorted(_config_var_from_key.items())}


def read_user_config(path: Optional[str]) -> Dict[str, Any]:
    """Parse the user config settings in the JSON file at path."""
    if not path:
        return {}
    if not os.path.exists(path):
        _logger.info(f"no config file at {path}, using defaults")
        return {}
    try:
        with open(path, "r", encoding='utf-8') as f:
            data = f.read()
        result = json.loads(data)
        assert isinstance(result, dict), "config file is not a dict"
    except (OSError, ValueError, AssertionError) as e:
        raise ValueError(f"Invalid config file at {path}: {str(e)}")
    return result
