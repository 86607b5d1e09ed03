"""Command line option management for commands."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    import argparse

    from cleartrack.settings import EngineConfig


class Option:
    """Represents an option for a command.

    This serves as a wrapper around the ArgumentParser options, allowing us
    to specify a default that will be grabbed from the configuration after
    it is loaded.

    The arguments to the constructor should be treated like those
    to argparse's :py:meth:`ArgumentParser.add_argument`, with the exception
    of ``config_key``.
    """

    ######################
    # Instance variables #
    ######################

    #: The long and short form option names.
    #:
    #: Type:
    #:     tuple
    opts: Tuple[str, ...]

    #: The attributes for the option.
    #:
    #: Type:
    #:     dict
    attrs: Dict[str, Any]

    #: The config key providing the default value, if any.
    #:
    #: Type:
    #:     str
    config_key: Optional[str]

    def __init__(
        self,
        *opts: str,
        config_key: Optional[str] = None,
        **attrs,
    ) -> None:
        """Initialize the option.

        Args:
            *opts (tuple of str):
                The long and short form option names.

            config_key (str, optional):
                A config key to retrieve a default value from the
                configuration when the option is not explicitly provided.
                This will take precedence over any ``default`` in ``attrs``.

            **attrs (dict):
                The argparse attributes for the option.
        """
        self.opts = opts
        self.attrs = attrs
        self.config_key = config_key

    def add_to(
        self,
        parent: argparse._ActionsContainer,
        config: Optional[EngineConfig] = None,
    ) -> None:
        """Add the option to the parent parser or group.

        If the option maps to a configuration key, the configured value
        becomes the default.

        Args:
            parent (argparse._ActionsContainer):
                The parent argument parser or group.

            config (cleartrack.settings.EngineConfig, optional):
                The loaded configuration.
        """
        attrs = self.attrs.copy()

        if (config is not None and
            (config_key := self.config_key) and
            config_key in config):
                attrs['default'] = config[config_key]

        parent.add_argument(*self.opts, **attrs)
