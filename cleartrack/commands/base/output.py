"""Output management for commands."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional, TextIO


class JSONOutput:
    """Output wrapper for JSON output.

    Commands add any structured output to this object. It's written out
    as a single JSON object when the command finishes, if :option:`--json`
    was passed.
    """

    ######################
    # Instance variables #
    ######################

    #: Raw storage for JSON data scheduled to be output.
    raw: Dict[str, Any]

    #: The stream where JSON output will be written to.
    _output_stream: TextIO

    def __init__(
        self,
        output_stream: TextIO,
    ) -> None:
        """Initialize JSONOutput class.

        Args:
            output_stream (io.IOBase):
                Object to output JSON object to.
        """
        self.raw = {}
        self._output_stream = output_stream

    def add(
        self,
        key: str,
        value: Any,
    ) -> None:
        """Add a new key value pair.

        Args:
            key (str):
                The key associated with the value to be added to dictionary.

            value (object):
                The value to attach to the key in the dictionary.
        """
        self.raw[key] = value

    def append(
        self,
        key: str,
        value: Any,
    ) -> None:
        """Add a new value to an existing list.

        Args:
            key (str):
                The key of the list to append to. The list is created if
                it doesn't exist.

            value (object):
                The value to append.
        """
        self.raw.setdefault(key, []).append(value)

    def add_error(
        self,
        error: str,
    ) -> None:
        """Add a new error to the "errors" key.

        Args:
            error (str):
                The error that will be added to ``errors``.
        """
        self.raw.setdefault('errors', []).append(error)

    def print_to_stream(self) -> None:
        """Output JSON string representation to output stream."""
        self._output_stream.write(json.dumps(self.raw,
                                             indent=4,
                                             sort_keys=True))
        self._output_stream.write('\n')


class OutputWrapper:
    """Wrapper for text output of a command.

    Setting :py:attr:`output_stream` to ``None`` silences the output, which
    is done when JSON output is requested.
    """

    ######################
    # Instance variables #
    ######################

    #: The wrapped output stream.
    output_stream: Optional[TextIO]

    def __init__(
        self,
        output_stream: TextIO,
    ) -> None:
        """Initialize with an output object to stream to.

        Args:
            output_stream (io.IOBase):
                The output stream to send command output to.
        """
        self.output_stream = output_stream

    def write(
        self,
        msg: Optional[str] = None,
        end: str = '\n',
    ) -> None:
        """Write a message to the output stream.

        Args:
            msg (str, optional):
                String to write to output stream.

            end (str, optional):
                String to append to end.

                This defaults to a newline.
        """
        if self.output_stream is None:
            return

        if msg:
            self.output_stream.write(msg)

        if end:
            self.output_stream.write(end)

    def new_line(self) -> None:
        """Write a newline to the output stream."""
        self.write()
