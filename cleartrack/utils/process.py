"""Utilities for running external processes."""

from __future__ import annotations

import io
import logging
import os
import subprocess
import tempfile
from typing import (BinaryIO, Dict, Iterator, List, Optional, Sequence,
                    Tuple, Union)


logger = logging.getLogger(__name__)


def _build_env(
    env: Optional[Dict[str, str]],
) -> Dict[str, str]:
    """Return the environment for a new process.

    Args:
        env (dict, optional):
            Caller-provided environment variables.

    Returns:
        dict:
        The current environment, combined with ``env`` and the default
        locale settings.
    """
    new_env = os.environ.copy()

    if env:
        new_env.update(env)

    # cleartool error strings are matched as text, so force a known locale.
    new_env['LC_ALL'] = 'en_US.UTF-8'
    new_env['LANGUAGE'] = 'en_US.UTF-8'

    return new_env


class RunProcessResult:
    """The result of running a process.

    This provides information on the command that was run, the return code,
    flags indicating if an error was met or ignored, and access to the raw
    or decoded standard output and error streams.

    This should only be constructed by :py:func:`run_process` or in unit tests
    when spying.
    """

    #: A string representation of the command that was run.
    #:
    #: Type:
    #:     str
    command: str

    #: The exit code from the process.
    #:
    #: Type:
    #:     int
    exit_code: int

    #: Whether this returned an exit code that was ignored.
    #:
    #: Type:
    #:     bool
    ignored_error: bool

    #: The encoding expected for any standard output or errors.
    #:
    #: Type:
    #:     str
    encoding: str

    #: The raw standard output from the process.
    #:
    #: Type:
    #:     io.BytesIO
    stdout_bytes: io.BytesIO

    #: The raw standard error output from the process.
    #:
    #: Type:
    #:     io.BytesIO
    stderr_bytes: io.BytesIO

    def __init__(
        self,
        *,
        command: str,
        exit_code: int = 0,
        ignored_error: bool = False,
        stdout: bytes = b'',
        stderr: bytes = b'',
        encoding: str = 'utf-8',
    ) -> None:
        """Initialize the process result.

        Args:
            command (str):
                The string form of the command that was run.

            exit_code (int, optional):
                The exit code of the process.

            ignored_error (bool, optional):
                Whether a non-0 exit code was ignored.

            stdout (bytes, optional):
                The standard output from the process.

            stderr (bytes, optional):
                The standard error output from the process.

            encoding (str, optional):
                The expected encoding for the output streams.
        """
        self.command = command
        self.exit_code = exit_code
        self.ignored_error = ignored_error
        self.encoding = encoding
        self.stdout_bytes = io.BytesIO(stdout)
        self.stderr_bytes = io.BytesIO(stderr)
        self._stdout: Optional[io.TextIOWrapper] = None
        self._stderr: Optional[io.TextIOWrapper] = None

    @property
    def stdout(self) -> io.TextIOWrapper:
        """The standard output as a decoded Unicode stream.

        Type:
            io.TextIOWrapper
        """
        if self._stdout is None:
            self._stdout = io.TextIOWrapper(self.stdout_bytes,
                                            encoding=self.encoding)

        return self._stdout

    @property
    def stderr(self) -> io.TextIOWrapper:
        """The standard error output as a decoded Unicode stream.

        Type:
            io.TextIOWrapper
        """
        if self._stderr is None:
            self._stderr = io.TextIOWrapper(self.stderr_bytes,
                                            encoding=self.encoding)

        return self._stderr


class RunProcessError(Exception):
    """An error running a process.

    The error code and standard output/error streams are available through
    the :py:attr:`result` attribute.
    """

    #: The result of running the process.
    #:
    #: Type:
    #:     RunProcessResult
    result: RunProcessResult

    def __init__(
        self,
        result: RunProcessResult,
    ) -> None:
        """Initialize the error.

        Args:
            result (RunProcessResult):
                The result of running the process.
        """
        super().__init__('Unexpected error executing the command: %s'
                         % result.command)

        self.result = result


class ProcessStream:
    """A lazily-consumed standard output stream of a running process.

    Standard error is spooled into a temporary file while standard output
    is read, so a chatty process can't block on a full pipe. Closing the
    stream terminates the process if it's still running.
    """

    ######################
    # Instance variables #
    ######################

    #: A string representation of the command that was run.
    command: str

    #: The exit code, once the process has finished.
    exit_code: Optional[int]

    def __init__(
        self,
        *,
        command: str,
        stdout: BinaryIO,
        stderr: BinaryIO,
        process: Optional[subprocess.Popen] = None,
        exit_code: Optional[int] = None,
    ) -> None:
        """Initialize the stream.

        Args:
            command (str):
                The string form of the command that was run.

            stdout (io.BufferedIOBase):
                The standard output of the process.

            stderr (io.BufferedIOBase):
                A seekable file receiving the standard error output.

            process (subprocess.Popen, optional):
                The running process. This is ``None`` for pre-recorded
                output in unit tests, in which case ``exit_code`` must be
                provided.

            exit_code (int, optional):
                The exit code, if already known.
        """
        assert process is not None or exit_code is not None

        self.command = command
        self.exit_code = exit_code
        self._stdout = stdout
        self._stderr = stderr
        self._process = process
        self._closed = False

    def __iter__(self) -> Iterator[bytes]:
        """Iterate through the lines of standard output.

        Yields:
            bytes:
            Each line, including the trailing newline.
        """
        return iter(self._stdout)

    def __enter__(self) -> ProcessStream:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def read(self) -> bytes:
        """Read the remainder of standard output.

        Returns:
            bytes:
            The unread standard output.
        """
        return self._stdout.read()

    def wait(self) -> int:
        """Wait for the process to finish.

        Returns:
            int:
            The exit code of the process.
        """
        if self.exit_code is None:
            assert self._process is not None
            self.exit_code = self._process.wait()

        return self.exit_code

    def read_stderr(self) -> bytes:
        """Return everything the process wrote to standard error.

        Returns:
            bytes:
            The standard error output.
        """
        self._stderr.seek(0)

        return self._stderr.read()

    def close(self) -> None:
        """Close the stream, terminating the process if needed."""
        if self._closed:
            return

        self._closed = True
        process = self._process

        if process is not None and process.poll() is None:
            logger.debug('Terminating: %s', self.command)
            process.terminate()

            try:
                process.wait(timeout=10)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()

        self._stdout.close()
        self._stderr.close()


def _command_to_str(
    command: Sequence[str],
) -> str:
    if isinstance(command, str):
        return command

    return subprocess.list2cmdline(command)


def run_process(
    command: Union[str, List[str]],
    *,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    encoding: str = 'utf-8',
    needs_stdout: bool = True,
    needs_stderr: bool = True,
    redirect_stderr: bool = False,
    ignore_errors: Union[bool, Tuple[int, ...]] = False,
    log_debug_output_on_error: bool = True,
) -> RunProcessResult:
    """Run a command and return the results.

    This will run the provided command and its arguments, optionally with
    the provided environment and working directory, returning a result that
    can be processed by the caller.

    Note that unit tests should not spy on this function. Instead, spy on
    :py:func:`run_process_exec`.

    Args:
        command (list of str):
            The command to execute.

        cwd (str, optional):
            An optional working directory in which to run the command.

        env (dict, optional):
            Environment variables to pass to the called executable.

            These will be combined with the current environment and used for
            the process. :envvar:`LC_ALL` and :envvar:`LANGUAGE` will be
            set to ``en_US.UTF-8``.

        encoding (str, optional):
            The encoding used to convert any output to Unicode strings.

        needs_stdout (bool, optional):
            Whether the caller needs standard output captured.

        needs_stderr (bool, optional):
            Whether the caller needs standard error output captured.

        redirect_stderr (bool, optional):
            Whether to redirect stderr output to stdout, combining the results
            into one.

        ignore_errors (bool or tuple, optional):
            Whether to ignore errors, or specific exit codes to ignore.

            If ``False`` (the default), non-0 exit codes will raise a
            :py:class:`RunProcessError`.

        log_debug_output_on_error (bool, optional):
            Whether to log the full output and errors of a command if it
            returns a non-0 exit code.

    Returns:
        RunProcessResult:
        The result of running the process, if no errors in execution were
        encountered.

    Raises:
        FileNotFoundError:
            The provided program could not be found.

        PermissionError:
            The user didn't have permissions to run the provided program,
            or the program wasn't executable.

        RunProcessError:
            The command returned a non-0 exit code, and that code wasn't
            ignored.
    """
    assert isinstance(ignore_errors, (bool, tuple))

    command_str = _command_to_str(command)

    logger.debug('Running: %s', command_str)

    try:
        exit_code, stdout, stderr = run_process_exec(
            command,
            cwd=cwd,
            env=_build_env(env),
            needs_stdout=needs_stdout,
            needs_stderr=needs_stderr,
            redirect_stderr=redirect_stderr)
    except FileNotFoundError:
        logger.debug('Command not found (%s)', command_str)
        raise
    except PermissionError as e:
        logger.debug('Permission denied running command (%s): %s',
                     command_str, e)
        raise
    except Exception as e:
        logger.debug('Unexpected error running command (%s): %s',
                     command_str, e)
        raise

    assert isinstance(exit_code, int)
    assert stdout is None or isinstance(stdout, bytes)
    assert stderr is None or isinstance(stderr, bytes)

    has_error = (exit_code != 0)

    ignored_error = (
        has_error and
        ignore_errors is True or
        (isinstance(ignore_errors, tuple) and
         exit_code in ignore_errors))

    run_result = RunProcessResult(
        command=command_str,
        encoding=encoding,
        exit_code=exit_code,
        ignored_error=ignored_error,
        stdout=stdout or b'',
        stderr=stderr or b'')

    if has_error:
        if ignored_error:
            logger.debug('Command exited with rc=%s (errors ignored): %s',
                         exit_code, run_result.command)
        else:
            logger.debug('Command errored with rc=%s: %s',
                         exit_code, run_result.command)

        if log_debug_output_on_error:
            logger.debug('Command stdout=%r', stdout)
            logger.debug('Command stderr=%r', stderr)

        if not ignored_error:
            raise RunProcessError(run_result)

    return run_result


def run_process_exec(
    command: Union[str, List[str]],
    cwd: Optional[str],
    env: Dict[str, str],
    needs_stdout: bool,
    needs_stderr: bool,
    redirect_stderr: bool,
) -> Tuple[int, Optional[bytes], Optional[bytes]]:
    """Executes a command for run_process, returning results.

    This normally wraps :py:func:`subprocess.run`, returning results for use
    in :py:func:`run_process`.

    Unit tests should override this method to return results, rather than
    spying on :py:func:`run_process` itself.

    Args:
        command (list of str):
            The command to run.

        cwd (str, optional):
            An optional working directory in which to run the command.

        env (dict):
            Environment variables to pass to the called executable.

        needs_stdout (bool):
            Whether the caller needs standard output captured.

        needs_stderr (bool):
            Whether the caller needs standard error output captured.

        redirect_stderr (bool):
            Whether to redirect stderr output to stdout, combining the results
            into one.

    Returns:
        tuple:
        A 3-tuple containing:

        Tuple:
            0 (int):
                The exit code.

            1 (bytes):
                The standard output, or ``None``.

            2 (bytes):
                The standard error output, or ``None``.
    """
    if needs_stdout:
        stdout = subprocess.PIPE
    else:
        stdout = subprocess.DEVNULL

    if redirect_stderr:
        stderr = subprocess.STDOUT
    elif needs_stderr:
        stderr = subprocess.PIPE
    else:
        stderr = subprocess.DEVNULL

    result = subprocess.run(
        command,
        stdin=subprocess.DEVNULL,
        stdout=stdout,
        stderr=stderr,
        env=env,
        cwd=cwd)

    return result.returncode, result.stdout, result.stderr


def open_process(
    command: List[str],
    *,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> ProcessStream:
    """Start a command and return a stream over its standard output.

    Unlike :py:func:`run_process`, output is not collected up-front. The
    caller owns the resulting stream and must close it.

    Unit tests should spy on :py:func:`open_process_exec` instead of this.

    Args:
        command (list of str):
            The command to execute.

        cwd (str, optional):
            An optional working directory in which to run the command.

        env (dict, optional):
            Environment variables to pass to the called executable.

    Returns:
        ProcessStream:
        The stream of standard output.

    Raises:
        FileNotFoundError:
            The provided program could not be found.

        PermissionError:
            The user didn't have permissions to run the provided program.
    """
    command_str = _command_to_str(command)

    logger.debug('Running: %s', command_str)

    try:
        return open_process_exec(command,
                                 cwd=cwd,
                                 env=_build_env(env))
    except FileNotFoundError:
        logger.debug('Command not found (%s)', command_str)
        raise
    except PermissionError as e:
        logger.debug('Permission denied running command (%s): %s',
                     command_str, e)
        raise


def open_process_exec(
    command: List[str],
    cwd: Optional[str],
    env: Dict[str, str],
) -> ProcessStream:
    """Start a command for open_process, returning its stream.

    This normally wraps :py:class:`subprocess.Popen`. Unit tests can
    override this to return a :py:class:`ProcessStream` built around
    canned output.

    Args:
        command (list of str):
            The command to run.

        cwd (str, optional):
            An optional working directory in which to run the command.

        env (dict):
            Environment variables to pass to the called executable.

    Returns:
        ProcessStream:
        The stream of standard output.
    """
    stderr_fp = tempfile.TemporaryFile()

    try:
        process = subprocess.Popen(command,
                                   stdin=subprocess.DEVNULL,
                                   stdout=subprocess.PIPE,
                                   stderr=stderr_fp,
                                   env=env,
                                   cwd=cwd)
    except Exception:
        stderr_fp.close()
        raise

    assert process.stdout is not None

    return ProcessStream(command=_command_to_str(command),
                         stdout=process.stdout,
                         stderr=stderr_fp,
                         process=process)
