"""Base support for commands.

This module provides forwarding imports for:

.. autosummary::
   :nosignatures:

   ~cleartrack.commands.base.commands.BaseCommand
   ~cleartrack.commands.base.errors.CommandError
   ~cleartrack.commands.base.errors.CommandExit
   ~cleartrack.commands.base.errors.UsageError
   ~cleartrack.commands.base.options.Option
"""

from cleartrack.commands.base.commands import BaseCommand
from cleartrack.commands.base.options import Option
from cleartrack.commands.base.errors import (CommandError,
                                             CommandExit,
                                             UsageError)


__all__ = [
    'BaseCommand',
    'CommandError',
    'CommandExit',
    'Option',
    'UsageError',
]
