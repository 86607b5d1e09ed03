"""Access to the cleartool command line.

All invocations of cleartool go through :py:class:`ClearTool`, which is
also the only place where cleartool's error messages are interpreted.
"""

from __future__ import annotations

import logging
import os
from typing import Iterator, List, Mapping, Optional, Sequence, Tuple, Type

from cleartrack.errors import (CancelledError,
                               ClearCaseError,
                               ExecutableMissingError,
                               ExternalCommandFailedError,
                               LabelExistsError,
                               ObjectDestroyedError)
from cleartrack.utils.process import (ProcessStream,
                                      open_process,
                                      run_process)


logger = logging.getLogger(__name__)


#: The property naming an explicit cleartool executable.
EXECUTABLE_PROPERTY = 'cleartool.executable.path'

#: The environment variable naming an explicit cleartool executable.
EXECUTABLE_ENV_VAR = 'CLEARTOOL_EXEC_PATH'

#: The executable used when nothing else is configured.
DEFAULT_EXECUTABLE = 'cleartool'


#: Substrings of cleartool output mapped to the errors they signify.
#:
#: The first matching entry wins. Output matching none of these is
#: reported as :py:class:`~cleartrack.errors.ExternalCommandFailedError`.
ERROR_SENTINELS: Sequence[Tuple[str, Type[ClearCaseError]]] = (
    ('error=2', ExecutableMissingError),
    ('not a ClearCase object', ObjectDestroyedError),
    ('already exists', LabelExistsError),
)


def find_cleartool(
    properties: Optional[Mapping[str, str]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> str:
    """Return the cleartool executable to run.

    The executable comes from the ``cleartool.executable.path`` property,
    then the :envvar:`CLEARTOOL_EXEC_PATH` environment variable, and
    finally the plain name ``cleartool`` looked up on the path.

    Args:
        properties (dict, optional):
            Engine properties.

        env (dict, optional):
            The environment. This defaults to :py:data:`os.environ`.

    Returns:
        str:
        The executable.
    """
    if env is None:
        env = os.environ

    return ((properties or {}).get(EXECUTABLE_PROPERTY) or
            env.get(EXECUTABLE_ENV_VAR) or
            DEFAULT_EXECUTABLE)


def classify_failure(
    executable: str,
    command: str,
    exit_code: int,
    output: str,
) -> ClearCaseError:
    """Return the error for a failed cleartool command.

    Args:
        executable (str):
            The cleartool executable.

        command (str):
            The command line that was run.

        exit_code (int):
            The exit code of the command.

        output (str):
            The error output of the command.

    Returns:
        cleartrack.errors.ClearCaseError:
        The error to raise.
    """
    output = output.strip()
    message = output or ('%s exited with code %s' % (command, exit_code))

    for sentinel, error_cls in ERROR_SENTINELS:
        if sentinel in output:
            if error_cls is ExecutableMissingError:
                return ExecutableMissingError(executable)

            assert issubclass(error_cls, ExternalCommandFailedError)

            return error_cls(message,
                             exit_code=exit_code,
                             command=command,
                             stderr=output)

    return ExternalCommandFailedError(message,
                                      exit_code=exit_code,
                                      command=command,
                                      stderr=output)


class ClearTool:
    """A configured cleartool executable.

    Instances are handed to each :py:class:`~cleartrack.connection.
    Connection`, so different roots can use different executables.
    """

    ######################
    # Instance variables #
    ######################

    #: The cleartool executable.
    executable: str

    #: The encoding of cleartool's output.
    encoding: str

    def __init__(
        self,
        executable: Optional[str] = None,
        *,
        encoding: str = 'utf-8',
    ) -> None:
        """Initialize the gateway.

        Args:
            executable (str, optional):
                The cleartool executable. This defaults to the result of
                :py:func:`find_cleartool`.

            encoding (str, optional):
                The encoding of cleartool's output.
        """
        self.executable = executable or find_cleartool()
        self.encoding = encoding

    def build_command(
        self,
        args: Sequence[str],
    ) -> List[str]:
        """Return the full command line for cleartool arguments."""
        return [self.executable] + list(args)

    def execute(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[str] = None,
    ) -> bytes:
        """Run cleartool and return its standard output.

        Args:
            args (list of str):
                The arguments to cleartool.

            cwd (str, optional):
                The working directory for the command.

        Returns:
            bytes:
            The standard output of the command.

        Raises:
            cleartrack.errors.CancelledError:
                The command was interrupted.

            cleartrack.errors.ExecutableMissingError:
                cleartool could not be found.

            cleartrack.errors.ExternalCommandFailedError:
                The command failed. This may be one of the more specific
                subclasses.
        """
        command = self.build_command(args)
        exit_code, stdout, stderr = self._run_command(command, cwd)

        if exit_code != 0:
            raise self._classify(command, exit_code, stderr or stdout)

        return stdout

    def execute_text(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[str] = None,
    ) -> str:
        """Run cleartool and return its decoded standard output."""
        return self.execute(args, cwd=cwd).decode(self.encoding)

    def execute_await(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[str] = None,
    ) -> int:
        """Run cleartool and return its exit code.

        A non-zero exit code is not treated as an error.

        Args:
            args (list of str):
                The arguments to cleartool.

            cwd (str, optional):
                The working directory for the command.

        Returns:
            int:
            The exit code.

        Raises:
            cleartrack.errors.CancelledError:
                The command was interrupted.

            cleartrack.errors.ExecutableMissingError:
                cleartool could not be found.
        """
        command = self.build_command(args)
        exit_code, stdout, stderr = self._run_command(command, cwd)

        if exit_code != 0:
            error = self._classify(command, exit_code, stderr or stdout)

            if isinstance(error, ExecutableMissingError):
                raise error

        return exit_code

    def stream(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[str] = None,
    ) -> ProcessStream:
        """Start cleartool and return a lazy stream of its output.

        The caller owns the stream. Closing it terminates cleartool if it's
        still running. Use :py:meth:`iter_lines` to also have the exit code
        checked.

        Args:
            args (list of str):
                The arguments to cleartool.

            cwd (str, optional):
                The working directory for the command.

        Returns:
            cleartrack.utils.process.ProcessStream:
            The output stream.

        Raises:
            cleartrack.errors.ExecutableMissingError:
                cleartool could not be found.
        """
        return self._open_command(self.build_command(args), cwd)

    def iter_lines(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[str] = None,
    ) -> Iterator[str]:
        """Run cleartool, yielding each line of output as it's produced.

        The process is terminated if the iterator is closed before the end
        of the output.

        Args:
            args (list of str):
                The arguments to cleartool.

            cwd (str, optional):
                The working directory for the command.

        Yields:
            str:
            Each line of output, without the line ending.

        Raises:
            cleartrack.errors.CancelledError:
                The command was interrupted.

            cleartrack.errors.ExternalCommandFailedError:
                The command failed once its output was consumed.
        """
        command = self.build_command(args)
        stream = self.stream(args, cwd=cwd)

        try:
            for line in stream:
                yield line.decode(self.encoding).rstrip('\r\n')

            exit_code = stream.wait()

            if exit_code != 0:
                raise self._classify(command, exit_code, stream.read_stderr())
        except KeyboardInterrupt:
            stream.close()

            raise CancelledError()
        finally:
            stream.close()

    def _run_command(
        self,
        command: List[str],
        cwd: Optional[str],
    ) -> Tuple[int, bytes, bytes]:
        """Run a full command line and return its results.

        Args:
            command (list of str):
                The command line.

            cwd (str):
                The working directory for the command.

        Returns:
            tuple:
            A 3-tuple of exit code, standard output and standard error.
        """
        try:
            result = run_process(command,
                                 cwd=cwd,
                                 encoding=self.encoding,
                                 ignore_errors=True)
        except FileNotFoundError:
            raise ExecutableMissingError(self.executable)
        except KeyboardInterrupt:
            raise CancelledError()

        return (result.exit_code,
                result.stdout_bytes.getvalue(),
                result.stderr_bytes.getvalue())

    def _open_command(
        self,
        command: List[str],
        cwd: Optional[str],
    ) -> ProcessStream:
        """Start a full command line and return its output stream.

        Args:
            command (list of str):
                The command line.

            cwd (str):
                The working directory for the command.

        Returns:
            cleartrack.utils.process.ProcessStream:
            The output stream.
        """
        try:
            return open_process(command, cwd=cwd)
        except FileNotFoundError:
            raise ExecutableMissingError(self.executable)

    def _classify(
        self,
        command: List[str],
        exit_code: int,
        output: bytes,
    ) -> ClearCaseError:
        return classify_failure(
            self.executable,
            ' '.join(command),
            exit_code,
            output.decode(self.encoding, 'replace'))

