"""Settings for VCS roots and the engine.

:py:class:`VcsRootSettings` holds the properties configured for one
ClearCase VCS root. :py:class:`EngineConfig` holds the properties that
apply to the engine as a whole, loaded from property mappings and from
:file:`.cleartrackrc` files.
"""

from __future__ import annotations

import inspect
import logging
import os
import tempfile
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from typing_extensions import Final, Self, TypeAlias

from cleartrack.errors import ConfigInvalidError
from cleartrack.utils.filesystem import get_home_path, walk_parents


logger = logging.getLogger(__name__)


#: A dictionary storing raw configuration data.
ConfigDict: TypeAlias = Dict[str, Any]


#: The property holding the path of the view.
VIEW_PATH: Final[str] = 'view-path'

#: The property holding the type of the root (UCM or BASE).
TYPE: Final[str] = 'TYPE'

#: The property enabling global labels.
USE_GLOBAL_LABEL: Final[str] = 'use-global-label'

#: The property holding the VOB of global labels.
GLOBAL_LABELS_VOB: Final[str] = 'global-labels-vob'

#: The property holding the path within the view checked out on agents.
RELATIVE_PATH: Final[str] = 'relative-path'

#: The root type using UCM activities.
TYPE_UCM: Final[str] = 'UCM'

#: The root type using base ClearCase.
TYPE_BASE: Final[str] = 'BASE'

#: The name of the default configuration file.
CONFIG_FILENAME: Final[str] = '.cleartrackrc'


#: Storage this module's builtins.
#:
#: This is used to exclude data from loaded configuration files.
_builtins: Dict[str, Any] = {}


def _is_true(
    value: Any,
) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == 'true'

    return bool(value)


class ConfigSyntaxError(Exception):
    """A syntax error in a configuration file."""

    def __init__(
        self,
        *,
        filename: str,
        line: Optional[int],
        column: Optional[int],
        details: str,
    ) -> None:
        """Initialize the error.

        Args:
            filename (str):
                The configuration filename.

            line (int):
                The 1-based line number containing the bad syntax.

            column (int):
                The 1-based column number containing the bad syntax.

            details (str):
                Extra details on the syntax error.
        """
        super().__init__(
            'Syntax error in %s (line %s, column %s): %s'
            % (filename, line, column, details))

        self.filename = filename
        self.line = line
        self.column = column
        self.details = details


class ConfigData:
    """Wrapper for configuration data.

    This stores raw configuration data, providing both dictionary-like and
    attribute-like access to it. Subclasses add type annotations and
    defaults for every known key.
    """

    ######################
    # Instance variables #
    ######################

    #: The filename that stored this configuration, if any.
    filename: Optional[str]

    #: The underlying raw configuration.
    _raw_config: ConfigDict

    def __init__(
        self,
        *,
        config_dict: Optional[ConfigDict] = None,
        filename: Optional[str] = None,
    ) -> None:
        """Initialize the configuration data wrapper.

        Args:
            config_dict (dict, optional):
                Loaded configuration data to wrap.

            filename (str, optional):
                The name of the associated configuration file.
        """
        self.filename = filename
        self._raw_config = dict(config_dict or {})

    @classmethod
    def known_keys(cls) -> List[str]:
        """Return the keys with declared types and defaults.

        Returns:
            list of str:
            The known configuration keys.
        """
        keys: List[str] = []

        for klass in reversed(cls.__mro__):
            if klass is object or not issubclass(klass, ConfigData):
                continue

            for key in inspect.get_annotations(klass):
                if not key.startswith('_') and key != 'filename':
                    keys.append(key)

        return keys

    def copy(self) -> Self:
        """Return a copy of this configuration data.

        Returns:
            ConfigData:
            A copy of this instance's class with a copy of the data.
        """
        return type(self)(filename=self.filename,
                          config_dict=deepcopy(self._raw_config))

    def get(
        self,
        key: str,
        default: Any = None,
    ) -> Any:
        """Return a value from a configuration item.

        Args:
            key (str):
                The configuration key.

            default (object, optional):
                The default value if the key cannot be found.

        Returns:
            object:
            The configuration value, or a default value if the key was
            not found.
        """
        try:
            return self[key]
        except KeyError:
            return default

    def merge(
        self,
        other_config: ConfigData,
    ) -> None:
        """Merge other configuration into this one.

        Values in ``other_config`` take precedence.

        Args:
            other_config (ConfigData):
                The configuration data to merge in.
        """
        self._raw_config.update(other_config._raw_config)

    def __contains__(
        self,
        key: str,
    ) -> bool:
        return key in self._raw_config or key in self.known_keys()

    def __getattribute__(
        self,
        name: str,
    ) -> Any:
        """Return the value for a configuration key as an attribute.

        This will return the value from the loaded configuration data, falling
        back to class-specified default value if one exists.

        Args:
            name (str):
                The configuration key.

        Returns:
            object:
            The configuration value, if found or if it has a default.
        """
        if name.isupper():
            raw_config = super().__getattribute__('_raw_config')

            if name in raw_config:
                return raw_config[name]

        return super().__getattribute__(name)

    def __getitem__(
        self,
        name: str,
    ) -> Any:
        raw_config = self._raw_config

        if name in raw_config:
            return raw_config[name]
        elif name in self.known_keys():
            return getattr(type(self), name)

        raise KeyError('"%s" is not a valid configuration key' % name)

    def __eq__(
        self,
        other: Any,
    ) -> bool:
        return (type(self) is type(other) and
                self._raw_config == other._raw_config)

    def __repr__(self) -> str:
        return (f'<{type(self).__name__}(filename={self.filename}, '
                f'config={self._raw_config})>')


#: A mapping of engine property names to configuration keys.
ENGINE_PROPERTY_KEYS: Final[Mapping[str, str]] = {
    'cleartool.executable.path': 'CLEARTOOL_EXECUTABLE',
    'clearcase.disable.caches': 'DISABLE_CACHES',
    'clearcase.optimize.initial.checkout': 'OPTIMIZE_INITIAL_CHECKOUT',
    'teamcity.clearcase.agent.disable.validation.errors':
        'DISABLE_AGENT_VALIDATION_ERRORS',
    'clearcase.caches.dir': 'CACHES_DIR',
}


class EngineConfig(ConfigData):
    """Configuration for the engine as a whole."""

    #: The cleartool executable to run.
    CLEARTOOL_EXECUTABLE: Optional[str] = None

    #: Whether the structure cache is disabled.
    DISABLE_CACHES: bool = False

    #: Whether initial checkouts copy files straight from the view.
    OPTIMIZE_INITIAL_CHECKOUT: bool = False

    #: Whether agent-side validation problems are only warnings.
    DISABLE_AGENT_VALIDATION_ERRORS: bool = False

    #: The directory where caches are stored.
    CACHES_DIR: str = os.path.join(tempfile.gettempdir(), 'cleartrack-caches')

    #: The colors used for command line log output, keyed by level name.
    COLOR: Dict[str, Optional[str]] = {
        'DEBUG': None,
        'INFO': None,
        'WARNING': 'yellow',
        'ERROR': 'red',
        'CRITICAL': 'red',
    }

    @classmethod
    def from_properties(
        cls,
        properties: Mapping[str, str],
    ) -> EngineConfig:
        """Return the configuration held in a set of properties.

        Unknown properties are ignored.

        Args:
            properties (dict):
                The properties, keyed by property name.

        Returns:
            EngineConfig:
            The configuration.
        """
        config_dict: ConfigDict = {}

        for prop_name, key in ENGINE_PROPERTY_KEYS.items():
            if prop_name in properties:
                value = properties[prop_name]

                if isinstance(getattr(cls, key), bool):
                    config_dict[key] = _is_true(value)
                else:
                    config_dict[key] = value

        return cls(config_dict=config_dict)

    def to_properties(self) -> Dict[str, str]:
        """Return the configuration as properties.

        Returns:
            dict:
            The explicitly-set properties, keyed by property name.
        """
        properties: Dict[str, str] = {}

        for prop_name, key in ENGINE_PROPERTY_KEYS.items():
            if key in self._raw_config:
                value = self._raw_config[key]

                if isinstance(value, bool):
                    value = 'true' if value else 'false'

                properties[prop_name] = value

        return properties


@dataclass(frozen=True)
class VcsRootSettings:
    """The settings of a ClearCase VCS root."""

    #: The absolute path to the view directory being tracked.
    #:
    #: Type:
    #:     str
    view_path: str

    #: Whether the root uses UCM activities.
    #:
    #: Type:
    #:     bool
    is_ucm: bool = True

    #: Whether labels are created as global labels.
    #:
    #: Type:
    #:     bool
    use_global_label: bool = False

    #: The VOB holding global label types.
    #:
    #: Type:
    #:     str
    global_labels_vob: Optional[str] = None

    #: The path within the view checked out on agents.
    #:
    #: Type:
    #:     str
    relative_path: Optional[str] = None

    @classmethod
    def from_properties(
        cls,
        properties: Mapping[str, str],
    ) -> VcsRootSettings:
        """Return the settings held in a set of root properties.

        Args:
            properties (dict):
                The root properties.

        Returns:
            VcsRootSettings:
            The settings.

        Raises:
            cleartrack.errors.ConfigInvalidError:
                The properties are invalid.
        """
        check_properties(properties)

        return cls(
            view_path=properties[VIEW_PATH],
            is_ucm=properties.get(TYPE, TYPE_UCM) == TYPE_UCM,
            use_global_label=_is_true(properties.get(USE_GLOBAL_LABEL)),
            global_labels_vob=properties.get(GLOBAL_LABELS_VOB) or None,
            relative_path=properties.get(RELATIVE_PATH) or None)

    def to_properties(self) -> Dict[str, str]:
        """Return the settings as root properties."""
        properties = {
            VIEW_PATH: self.view_path,
            TYPE: TYPE_UCM if self.is_ucm else TYPE_BASE,
            USE_GLOBAL_LABEL: 'true' if self.use_global_label else 'false',
        }

        if self.global_labels_vob:
            properties[GLOBAL_LABELS_VOB] = self.global_labels_vob

        if self.relative_path:
            properties[RELATIVE_PATH] = self.relative_path

        return properties

    def describe(self) -> str:
        """Return a short description of the root."""
        return 'clearcase: %s' % self.view_path


def _is_vob_root(
    view_path: str,
    view_root: str,
) -> bool:
    """Return whether a path is the root directory of a VOB.

    VOB roots sit directly in the view root, or in its :file:`vobs`
    directory.
    """
    parent = os.path.dirname(os.path.normpath(view_path))
    view_root = os.path.normpath(view_root)

    return (parent == view_root or
            (os.path.basename(parent).lower() == 'vobs' and
             os.path.dirname(parent) == view_root))


def validate_properties(
    properties: Mapping[str, str],
    view_root: Optional[str] = None,
) -> List[ConfigInvalidError.InvalidProperty]:
    """Return the problems with a set of root properties.

    Args:
        properties (dict):
            The root properties.

        view_root (str, optional):
            The root of the view, if known. This enables the check that the
            view path isn't the root of a VOB.

    Returns:
        list of tuple:
        Each invalid property, as a ``(key, message)`` tuple.
    """
    invalid: List[ConfigInvalidError.InvalidProperty] = []
    view_path = (properties.get(VIEW_PATH) or '').strip()

    if not view_path:
        invalid.append((VIEW_PATH, 'View path must be specified'))
    elif view_root and _is_vob_root(view_path, view_root):
        invalid.append((
            VIEW_PATH,
            'Please select some project directory inside the VOB one, '
            'not the VOB root directory itself'))

    if (_is_true(properties.get(USE_GLOBAL_LABEL)) and
        not (properties.get(GLOBAL_LABELS_VOB) or '').strip()):
        invalid.append((GLOBAL_LABELS_VOB,
                        'Global labels VOB must be specified'))

    return invalid


def check_properties(
    properties: Mapping[str, str],
    view_root: Optional[str] = None,
) -> None:
    """Check a set of root properties.

    Args:
        properties (dict):
            The root properties.

        view_root (str, optional):
            The root of the view, if known.

    Raises:
        cleartrack.errors.ConfigInvalidError:
            One or more properties are invalid.
    """
    invalid = validate_properties(properties, view_root)

    if invalid:
        raise ConfigInvalidError(invalid)


def get_config_paths() -> List[str]:
    """Return the paths to each :file:`.cleartrackrc` influencing the cwd.

    Each subsequent entry has lower precedence than the previous one.
    Paths from :envvar:`$CLEARTRACK_CONFIG_PATH` come first, then the
    current directory and its parents, then the home directory.

    Returns:
        list of str:
        The list of configuration paths.
    """
    config_paths: List[str] = []

    for path in os.environ.get('CLEARTRACK_CONFIG_PATH', '').split(
            os.pathsep):
        if not path:
            continue

        filename = os.path.realpath(os.path.join(path, CONFIG_FILENAME))

        if os.path.exists(filename) and filename not in config_paths:
            config_paths.append(filename)

    for path in walk_parents(os.getcwd()):
        filename = os.path.realpath(os.path.join(path, CONFIG_FILENAME))

        if os.path.exists(filename) and filename not in config_paths:
            config_paths.append(filename)

    home_config_path = os.path.realpath(os.path.join(get_home_path(),
                                                     CONFIG_FILENAME))

    if (os.path.exists(home_config_path) and
        home_config_path not in config_paths):
        config_paths.append(home_config_path)

    return config_paths


def parse_config_file(
    filename: str,
) -> EngineConfig:
    """Parse a :file:`.cleartrackrc` file.

    The file is Python code. Each top-level variable is a configuration
    key, such as ``DISABLE_CACHES = True``.

    Args:
        filename (str):
            The full path to the file.

    Returns:
        EngineConfig:
        The loaded configuration data.

    Raises:
        ConfigSyntaxError:
            There was a syntax error in the configuration file.
    """
    config: ConfigDict = {}

    with open(filename) as fp:
        try:
            exec(compile(fp.read(), filename, 'exec'), config)
        except SyntaxError as e:
            raise ConfigSyntaxError(filename=filename,
                                    line=e.lineno,
                                    column=e.offset,
                                    details=str(e))

    return EngineConfig(
        filename=filename,
        config_dict={
            key: config[key]
            for key in set(config.keys()) - set(_builtins.keys())
        })


def load_config(
    filename: Optional[str] = None,
    properties: Optional[Mapping[str, str]] = None,
) -> EngineConfig:
    """Load the engine configuration.

    Configuration files are applied from lowest to highest precedence, and
    then any properties are applied on top.

    Args:
        filename (str, optional):
            An explicit configuration file. If not provided, the files
            returned by :py:func:`get_config_paths` are used.

        properties (dict, optional):
            Properties overriding the files.

    Returns:
        EngineConfig:
        The loaded configuration.
    """
    config = EngineConfig()

    if filename:
        filenames = [filename]
    else:
        filenames = list(reversed(get_config_paths()))

    for path in filenames:
        logger.debug('Loading configuration from %s', path)
        config.merge(parse_config_file(path))

    if properties:
        config.merge(EngineConfig.from_properties(properties))

    return config


# This extracts a dictionary of the built-in globals in order to have a clean
# dictionary of settings, consisting of only what has been specified in the
# config file.
exec('True', _builtins)
