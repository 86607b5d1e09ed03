"""Base support for creating commands."""

from __future__ import annotations

import logging
from typing import Optional, TYPE_CHECKING

import importlib_metadata

from cleartrack.commands.base.commands import (
    CLEARTRACK_MAIN as _CLEARTRACK_MAIN)

if TYPE_CHECKING:
    from importlib_metadata import EntryPoint, EntryPoints


logger = logging.getLogger(__name__)


CLEARTRACK_MAIN = _CLEARTRACK_MAIN

#: The entry point group holding commands.
COMMANDS_ENTRY_POINT_GROUP = 'cleartrack_commands'


def find_entry_point_for_command(
    command_name: str,
) -> Optional[EntryPoint]:
    """Return an entry point for the given command.

    Args:
        command_name (str):
            The name of the command to find.

    Returns:
        importlib_metadata.EntryPoint:
        The resulting entry point, if found, or ``None`` if not found.
    """
    entry_points: Optional[EntryPoints]

    # We first look in cleartrack for the commands, and failing that, we
    # look for third-party commands.
    try:
        entry_points = (
            importlib_metadata
            .distribution('cleartrack')
            .entry_points
            .select(group=COMMANDS_ENTRY_POINT_GROUP,
                    name=command_name)
        )
    except Exception as e:
        logger.exception('Failed to read built-in cleartrack commands: %s',
                         e)
        entry_points = None

    if not entry_points:
        try:
            entry_points = importlib_metadata.entry_points(
                group=COMMANDS_ENTRY_POINT_GROUP,
                name=command_name)
        except Exception as e:
            logger.exception('Failed to read available cleartrack commands: '
                             '%s',
                             e)
            entry_points = None

    if entry_points:
        return next(iter(entry_points))

    return None
