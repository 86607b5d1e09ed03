"""Errors raised while running cleartrack commands.

Engine failures are reported as :py:class:`cleartrack.errors.ClearCaseError`.
The errors here cover problems with the command itself.
"""

from __future__ import annotations

from typing import Tuple


class CommandExit(Exception):
    """Ends a command early with the given exit code.

    Nothing further is reported to the user. Any JSON output gathered so
    far is still printed.
    """

    ######################
    # Instance variables #
    ######################

    #: The code the process exits with.
    exit_code: int

    def __init__(
        self,
        exit_code: int = 0,
    ) -> None:
        """Initialize the error.

        Args:
            exit_code (int, optional):
                The code the process exits with.
        """
        super().__init__('Command exited with code %s' % exit_code)
        self.exit_code = exit_code


class CommandError(Exception):
    """A command couldn't do what it was asked to.

    The message is logged and added to the JSON errors, and the command
    exits with a code of 1.
    """


class UsageError(CommandError):
    """The arguments given to a command can't be used together.

    The message is shown along with the command's usage, and the command
    exits with a code of 2.
    """

    ######################
    # Instance variables #
    ######################

    #: The arguments that conflict.
    arguments: Tuple[str, ...]

    def __init__(
        self,
        message: str,
        *arguments: str,
    ) -> None:
        """Initialize the error.

        Args:
            message (str):
                The description of the problem.

            *arguments (tuple of str):
                The names of the arguments that conflict.
        """
        super().__init__(message)
        self.arguments = arguments
