"""Base classes for commands."""

from __future__ import annotations

import argparse
import inspect
import logging
import os
import platform
import subprocess
import sys
from typing import ClassVar, List, Optional, TextIO

import colorama

from cleartrack import get_version_string
from cleartrack.commands.base.errors import (CommandError,
                                             CommandExit,
                                             UsageError)
from cleartrack.commands.base.options import Option
from cleartrack.commands.base.output import JSONOutput, OutputWrapper
from cleartrack.errors import ClearCaseError, ConfigInvalidError
from cleartrack.settings import (EngineConfig,
                                 GLOBAL_LABELS_VOB,
                                 TYPE,
                                 TYPE_BASE,
                                 TYPE_UCM,
                                 USE_GLOBAL_LABEL,
                                 VIEW_PATH,
                                 VcsRootSettings,
                                 load_config)
from cleartrack.support import ClearCaseSupport
from cleartrack.utils.filesystem import cleanup_tempfiles, get_home_path


CLEARTRACK_MAIN = 'cleartrack'


class LogLevelFilter(logging.Filter):
    """Filters log messages of a given level.

    Only log messages that have the specified level will be allowed by
    this filter. This prevents propagation of higher level types to lower
    log handlers.
    """

    def __init__(
        self,
        level: int,
    ) -> None:
        """Initialize the filter.

        Args:
            level (int):
                The log level to filter for.
        """
        self.level = level

    def filter(
        self,
        record: logging.LogRecord,
    ) -> bool:
        """Filter a log record.

        Args:
            record (logging.LogRecord):
                The record to filter.

        Returns:
            bool:
            ``True`` if the record's log level matches the filter.
        """
        return record.levelno == self.level


class SmartHelpFormatter(argparse.HelpFormatter):
    """Smartly formats help text, preserving paragraphs."""

    def _split_lines(
        self,
        text: str,
        width: int,
    ) -> List[str]:
        """Split text to a given width.

        Args:
            text (str):
                The log text to split.

            width (int):
                The width to split to.

        Returns:
            list of str:
            The list of split lines.
        """
        # NOTE: This depends on overriding _split_lines's behavior, which
        #       is not public API. HelpFormatter calculates the width we
        #       need and offers no other way to get at it.
        lines: List[str] = []

        for line in text.splitlines():
            lines += super()._split_lines(line, width)
            lines.append('')

        return lines[:-1]


class BaseCommand:
    """Base class for cleartrack commands.

    This class will handle retrieving the configuration, parsing command
    line options, setting up logging and reporting errors.
    """

    #: The name of the command.
    #:
    #: Type:
    #:     str
    name: ClassVar[str] = ''

    #: A short description of the command, suitable for display in usage text.
    #:
    #: Type:
    #:     str
    description: ClassVar[str] = ''

    #: Usage text for what arguments the command takes.
    #:
    #: Type:
    #:     str
    args: ClassVar[str] = ''

    #: Whether the command works with a view.
    #:
    #: If this is set, the initialization of the command will set
    #: :py:attr:`support`.
    #:
    #: Type:
    #:     bool
    needs_support: ClassVar[bool] = True

    #: Command-line options for this command.
    #:
    #: Type:
    #:     list of Option
    option_list: ClassVar[List[Option]] = []

    _global_options: ClassVar[List[Option]] = [
        Option('-d', '--debug',
               action='store_true',
               dest='debug',
               default=False,
               help='Display debug output.'),
        Option('--config',
               dest='config_file',
               metavar='FILE',
               default=None,
               help='The configuration file to load, instead of looking '
                    'for .cleartrackrc files.'),
        Option('--cleartool',
               dest='cleartool',
               metavar='PATH',
               config_key='CLEARTOOL_EXECUTABLE',
               default=None,
               help='The cleartool executable to run.'),
        Option('--disable-cache',
               action='store_true',
               dest='disable_cache',
               config_key='DISABLE_CACHES',
               default=False,
               help='Run cleartool for every lookup instead of using the '
                    'structure cache.'),
        Option('--json',
               action='store_true',
               dest='json_output',
               default=False,
               help='Output results as JSON data instead of text.'),
    ]

    #: Options for commands that work with a view.
    root_options: ClassVar[List[Option]] = [
        Option('--base',
               action='store_true',
               dest='base_clearcase',
               default=False,
               help='Treat the view as a base ClearCase view rather than '
                    'a UCM one.'),
        Option('--global-labels-vob',
               dest='global_labels_vob',
               metavar='VOB',
               default=None,
               help='Create labels as global labels in this VOB.'),
    ]

    ######################
    # Instance variables #
    ######################

    #: The loaded configuration.
    config: Optional[EngineConfig]

    #: An output buffer for JSON results.
    json: JSONOutput

    #: Options parsed for the command.
    options: argparse.Namespace

    #: The stream for writing error output.
    stderr: OutputWrapper

    #: Whether the stderr stream is from an interactive session.
    stderr_is_atty: bool

    #: The stream for writing output.
    stdout: OutputWrapper

    #: Whether the stdout stream is from an interactive session.
    stdout_is_atty: bool

    #: The engine entry point.
    #:
    #: This will be set when the command is run if
    #: :py:attr:`needs_support` is ``True``.
    support: Optional[ClearCaseSupport]

    def __init__(
        self,
        stdout: TextIO = sys.stdout,
        stderr: TextIO = sys.stderr,
    ) -> None:
        """Initialize the base functionality for the command.

        Args:
            stdout (io.TextIOWrapper, optional):
                The standard output stream. This can be used to capture
                output programmatically.

            stderr (io.TextIOWrapper, optional):
                The standard error stream. This can be used to capture
                errors programmatically.
        """
        self.log = logging.getLogger('cleartrack.commands.%s' % self.name)
        self.config = None
        self.support = None

        self.stdout = OutputWrapper(stdout)
        self.stderr = OutputWrapper(stderr)

        self.stdout_is_atty = hasattr(stdout, 'isatty') and stdout.isatty()
        self.stderr_is_atty = hasattr(stderr, 'isatty') and stderr.isatty()

        self.json = JSONOutput(stdout)

    def create_parser(
        self,
        config: EngineConfig,
    ) -> argparse.ArgumentParser:
        """Return a new argument parser for this command.

        Args:
            config (cleartrack.settings.EngineConfig):
                The loaded configuration.

        Returns:
            argparse.ArgumentParser:
            The new argument parser for the command.
        """
        parser = argparse.ArgumentParser(
            prog=CLEARTRACK_MAIN,
            usage=self.usage(),
            formatter_class=SmartHelpFormatter)

        for option in self.option_list:
            option.add_to(parser, config)

        if self.needs_support:
            for option in self.root_options:
                option.add_to(parser, config)

        for option in self._global_options:
            option.add_to(parser, config)

        return parser

    def usage(self) -> str:
        """Return a usage string for the command.

        Returns:
            str:
            Usage text for the command.
        """
        usage = '%%(prog)s %s [options] %s' % (self.name, self.args)

        if self.description:
            return '%s\n\n%s' % (usage, self.description)
        else:
            return usage

    def _load_config(
        self,
        argv: List[str],
    ) -> EngineConfig:
        """Load the configuration named on the command line, if any."""
        pre_parser = argparse.ArgumentParser(add_help=False)
        pre_parser.add_argument('--config', dest='config_file', default=None)
        pre_options, _ = pre_parser.parse_known_args(argv[2:])

        return load_config(pre_options.config_file)

    def _create_formatter(
        self,
        level: str,
        fmt: str,
    ) -> logging.Formatter:
        """Create a logging formatter for the appropriate logging level.

        When writing to a TTY, the format will be colorized by the colors
        specified in the ``COLOR`` configuration in :file:`.cleartrackrc`.
        Otherwise, the format will not be altered.

        Args:
            level (str):
                The logging level name.

            fmt (str):
                The logging format.

        Returns:
            logging.Formatter:
            The created formatter.
        """
        color = ''
        reset = ''

        if self.stderr_is_atty and self.config is not None:
            color_name = self.config['COLOR'].get(level.upper())

            if color_name:
                color = getattr(colorama.Fore, color_name.upper(), '')

                if color:
                    reset = colorama.Fore.RESET

        return logging.Formatter(fmt.format(color=color, reset=reset))

    def initialize(self) -> None:
        """Initialize the command.

        This applies the command line options to the configuration and
        sets up :py:attr:`support` for commands that need it.

        Raises:
            cleartrack.commands.base.errors.CommandError:
                An error occurred while initializing the command.
        """
        assert self.config is not None

        options = self.options
        overrides = {}

        if options.cleartool:
            overrides['CLEARTOOL_EXECUTABLE'] = options.cleartool

        if options.disable_cache:
            overrides['DISABLE_CACHES'] = True

        if overrides:
            self.config.merge(EngineConfig(config_dict=overrides))

        if self.needs_support:
            self.support = self._make_support()

        if options.json_output:
            self.stdout.output_stream = None
            self.stderr.output_stream = None

    def _make_support(self) -> ClearCaseSupport:
        """Return the engine entry point for the command.

        Returns:
            cleartrack.support.ClearCaseSupport:
            The engine entry point, built from the loaded configuration.
        """
        return ClearCaseSupport(self.config)

    def get_root_settings(
        self,
        view_path: str,
    ) -> VcsRootSettings:
        """Return the root settings for a view path given on the command line.

        Args:
            view_path (str):
                The view path.

        Returns:
            cleartrack.settings.VcsRootSettings:
            The settings.

        Raises:
            cleartrack.commands.base.errors.CommandError:
                The settings are invalid.
        """
        options = self.options
        properties = {
            VIEW_PATH: os.path.abspath(view_path),
            TYPE: TYPE_BASE if options.base_clearcase else TYPE_UCM,
        }

        if options.global_labels_vob:
            properties[USE_GLOBAL_LABEL] = 'true'
            properties[GLOBAL_LABELS_VOB] = options.global_labels_vob

        try:
            return VcsRootSettings.from_properties(properties)
        except ConfigInvalidError as e:
            raise CommandError(str(e))

    def create_arg_parser(
        self,
        argv: List[str],
    ) -> argparse.ArgumentParser:
        """Create and return the argument parser.

        Args:
            argv (list of str):
                A list of command line arguments.

        Returns:
            argparse.ArgumentParser:
            Argument parser for commandline arguments.
        """
        if self.config is None:
            self.config = self._load_config(argv)

        parser = self.create_parser(self.config)
        parser.add_argument('args', nargs=argparse.REMAINDER)

        return parser

    def run_from_argv(
        self,
        argv: List[str],
    ) -> None:
        """Execute the command using the provided arguments.

        The options and commandline arguments will be parsed
        from ``argv`` and the commands ``main`` method will
        be called.

        Args:
            argv (list of str):
                A list of command line arguments.
        """
        parser = self.create_arg_parser(argv)
        self.options = parser.parse_args(argv[2:])

        args = self.options.args

        # Check that the proper number of arguments have been provided.
        argspec = inspect.getfullargspec(self.main)
        minargs = len(argspec.args) - 1
        maxargs: Optional[int] = minargs

        # Arguments that have a default value are considered optional.
        if argspec.defaults is not None:
            minargs -= len(argspec.defaults)

        if argspec.varargs is not None:
            maxargs = None

        if len(args) < minargs or (maxargs is not None and
                                   len(args) > maxargs):
            parser.error('Invalid number of arguments provided')

            sys.exit(1)

        try:
            self._init_logging()
            logging.debug('Command line: %s', subprocess.list2cmdline(argv))

            self.initialize()
            exit_code = self.main(*args) or 0
        except (CommandError, ClearCaseError) as e:
            if isinstance(e, UsageError):
                parser.error(str(e))
            elif self.options.debug:
                raise

            logging.error(e)
            self.json.add_error(str(e))
            exit_code = 1
        except CommandExit as e:
            exit_code = e.exit_code
        except Exception as e:
            # If debugging is on, we'll let python spit out the
            # stack trace and report the exception, otherwise
            # we'll suppress the trace and print the exception
            # manually.
            if self.options.debug:
                raise

            self.json.add_error('Internal error: %s: %s'
                                % (type(e).__name__, e))
            logging.critical(e)
            exit_code = 1

        cleanup_tempfiles()

        if self.options.json_output:
            if 'errors' in self.json.raw:
                self.json.add('status', 'failed')
            else:
                self.json.add('status', 'success')

            self.json.print_to_stream()

        sys.exit(exit_code)

    def main(self, *args) -> int:
        """Run the main logic of the command.

        This method should be overridden to implement the commands
        functionality.

        Args:
             *args (tuple):
                Positional arguments passed to the command.

        Returns:
            int:
            The resulting exit code.
        """
        raise NotImplementedError()

    def _init_logging(self) -> None:
        """Initialize logging for the command.

        This will set up different log handlers based on the formatting we want
        for the given levels.

        The INFO log handler will just show the text, like a print statement.

        WARNING and higher will show the level name as a prefix, in the form of
        "LEVEL: message".

        If debugging is enabled, a debug log handler will be set up showing
        debug messages in the form of ">>> message", making it easier to
        distinguish between debugging and other messages.
        """
        if self.stderr_is_atty:
            # We only use colorized logging when writing to TTYs, so we don't
            # bother initializing it then.
            colorama.init()

        log_stream = self.stderr.output_stream

        root = logging.getLogger()

        if self.options.debug:
            handler = logging.StreamHandler(log_stream)
            handler.setFormatter(self._create_formatter(
                'DEBUG', '{color}>>>{reset} %(message)s'))
            handler.setLevel(logging.DEBUG)
            handler.addFilter(LogLevelFilter(logging.DEBUG))
            root.addHandler(handler)

            root.setLevel(logging.DEBUG)
        else:
            root.setLevel(logging.INFO)

        # Handler for info messages. We'll treat these like prints.
        handler = logging.StreamHandler(log_stream)
        handler.setFormatter(self._create_formatter(
            'INFO', '{color}%(message)s{reset}'))

        handler.setLevel(logging.INFO)
        handler.addFilter(LogLevelFilter(logging.INFO))
        root.addHandler(handler)

        # Handlers for warnings, errors, and criticals. They'll show the
        # level prefix and the message.
        levels = (
            ('WARNING', logging.WARNING),
            ('ERROR', logging.ERROR),
            ('CRITICAL', logging.CRITICAL),
        )

        for level_name, level in levels:
            handler = logging.StreamHandler(log_stream)
            handler.setFormatter(self._create_formatter(
                level_name, '{color}%(levelname)s:{reset} %(message)s'))
            handler.addFilter(LogLevelFilter(level))
            handler.setLevel(level)
            root.addHandler(handler)

        logging.debug('cleartrack %s', get_version_string())
        logging.debug('Python %s', sys.version)
        logging.debug('Running on %s', platform.platform())
        logging.debug('Home = %s', get_home_path())
        logging.debug('Current directory = %s', os.getcwd())
