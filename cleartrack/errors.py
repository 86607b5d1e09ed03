"""Error definitions for the ClearCase integration."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from typing_extensions import TypeAlias


class ClearCaseError(Exception):
    """A generic error from ClearCase or the integration around it."""


class ConfigInvalidError(ClearCaseError):
    """One or more required VCS root properties are missing or malformed.

    Attributes:
        invalid_properties (list of tuple):
            Each invalid property, as a ``(key, message)`` tuple.
    """

    #: A type alias for a single invalid property.
    InvalidProperty: TypeAlias = Tuple[str, str]

    def __init__(
        self,
        invalid_properties: Sequence[InvalidProperty],
    ) -> None:
        """Initialize the error.

        Args:
            invalid_properties (list of tuple):
                Each invalid property, as a ``(key, message)`` tuple.
        """
        self.invalid_properties: List[ConfigInvalidError.InvalidProperty] = \
            list(invalid_properties)

        super().__init__('; '.join(
            '%s: %s' % (key, message)
            for key, message in self.invalid_properties
        ))


class ExecutableMissingError(ClearCaseError):
    """The cleartool executable could not be found.

    Attributes:
        executable (str):
            The executable that was looked up.
    """

    def __init__(
        self,
        executable: str,
    ) -> None:
        """Initialize the error.

        Args:
            executable (str):
                The executable that was looked up.
        """
        self.executable = executable

        super().__init__(
            'The cleartool executable (%s) could not be found. Set '
            'cleartool.executable.path or $CLEARTOOL_EXEC_PATH to its '
            'location.'
            % executable)


class ExternalCommandFailedError(ClearCaseError):
    """A cleartool command exited with a non-zero exit code.

    Attributes:
        command (str):
            The command line that was run.

        exit_code (int):
            The exit code of the command.

        stderr (str):
            The captured standard error output.
    """

    def __init__(
        self,
        message: str,
        *,
        exit_code: int,
        command: str = '',
        stderr: str = '',
    ) -> None:
        """Initialize the error.

        Args:
            message (str):
                The error message.

            exit_code (int):
                The exit code of the command.

            command (str, optional):
                The command line that was run.

            stderr (str, optional):
                The captured standard error output.
        """
        super().__init__(message)

        self.exit_code = exit_code
        self.command = command
        self.stderr = stderr


class ObjectDestroyedError(ExternalCommandFailedError):
    """The requested version is no longer a ClearCase object."""


class LabelExistsError(ExternalCommandFailedError):
    """The label type being created already exists."""


class ViewUnreadableError(ClearCaseError):
    """The view root is missing or is not a ClearCase view."""

    def __init__(
        self,
        view_path: str,
        reason: Optional[str] = None,
    ) -> None:
        """Initialize the error.

        Args:
            view_path (str):
                The path that was expected to be inside a view.

            reason (str, optional):
                Extra details on why the view could not be read.
        """
        self.view_path = view_path

        message = '"%s" is not a readable ClearCase view' % view_path

        if reason:
            message = '%s: %s' % (message, reason)

        super().__init__(message)


class CancelledError(ClearCaseError):
    """The operation was interrupted by the caller."""

    def __init__(self):
        """Initialize the error."""
        super().__init__('The operation was cancelled.')


class InternalError(ClearCaseError):
    """A parser or version tree invariant was violated."""


class ConfigSpecSyntaxError(InternalError):
    """A config spec could not be parsed.

    Attributes:
        line (int):
            The 1-based line number of the offending rule, if known.
    """

    def __init__(
        self,
        msg: str,
        *,
        line: Optional[int] = None,
    ) -> None:
        """Initialize the error.

        Args:
            msg (str):
                The error message.

            line (int, optional):
                The 1-based line number of the offending rule.
        """
        if line is not None:
            msg = 'Line %s: %s' % (line, msg)

        super().__init__(msg)

        self.line = line


class CacheError(Exception):
    """An error with the structure cache.

    This is handled inside the cache, which falls back to live cleartool
    calls instead.
    """
