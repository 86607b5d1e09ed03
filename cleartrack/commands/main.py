"""Main handler for the cleartrack command."""

from __future__ import annotations

import argparse
import signal
import sys
import traceback

import importlib_metadata

from cleartrack import get_version_string
from cleartrack.commands import (CLEARTRACK_MAIN,
                                 COMMANDS_ENTRY_POINT_GROUP,
                                 find_entry_point_for_command)
from cleartrack.commands.base import Option
from cleartrack.settings import load_config


GLOBAL_OPTIONS = [
    Option('-v', '--version',
           action='version',
           version='cleartrack %s (Python %d.%d.%d)' % (
               get_version_string(),
               sys.version_info[:3][0],
               sys.version_info[:3][1],
               sys.version_info[:3][2])),
    Option('-h', '--help',
           action='store_true',
           dest='help',
           default=False),
    Option('command',
           nargs=argparse.REMAINDER,
           help='The cleartrack command to execute, and any arguments. '
                '(See below)'),
]


def print_help_text(command_class):
    """Print help text from a command class.

    Args:
        command_class (type):
            The command class to instantiate.
    """
    parser = command_class().create_parser(load_config())
    print(parser.format_help())


def help(args, parser):
    if args:
        ep = find_entry_point_for_command(args[0])

        if ep:
            print_help_text(ep.load())
            sys.exit(0)

        print('No help found for %s' % args[0])
        sys.exit(0)

    parser.print_help()

    # We cast to a set to de-dupe the list, since third-parties may
    # try to override commands by using the same name.
    entrypoints = importlib_metadata.entry_points(
        group=COMMANDS_ENTRY_POINT_GROUP)
    commands = {
        _entrypoint.name
        for _entrypoint in entrypoints
    }

    print('\nAvailable commands:')

    for command in sorted(commands):
        print('  %s' % command)

    print('See "%s help <command>" for more information on a specific '
          'command.' % CLEARTRACK_MAIN)
    sys.exit(0)


def main():
    """Execute a command."""
    def exit_on_int(sig, frame):
        sys.exit(128 + sig)
    signal.signal(signal.SIGINT, exit_on_int)

    parser = argparse.ArgumentParser(
        prog=CLEARTRACK_MAIN,
        usage='%(prog)s [--version] <command> [options] [<args>]',
        add_help=False)

    for option in GLOBAL_OPTIONS:
        option.add_to(parser)

    opt = parser.parse_args()

    if not opt.command:
        help([], parser)

    command_name = opt.command[0]
    args = opt.command[1:]

    if command_name == 'help':
        help(args, parser)
    elif opt.help or '--help' in args or '-h' in args:
        help(opt.command, parser)

    ep = find_entry_point_for_command(command_name)

    if not ep:
        parser.error('"%s" is not a command' % command_name)

    try:
        command = ep.load()()
    except ImportError as e:
        sys.stderr.write('Could not load command entry point %s: %s\n'
                         % (ep.name, e))
        sys.stderr.write(''.join(traceback.format_exception(e)))
        sys.exit(1)
    except Exception as e:
        sys.stderr.write('Unexpected error loading command %s: %s\n'
                         % (ep.name, e))
        sys.stderr.write(''.join(traceback.format_exception(e)))
        sys.exit(1)

    command.run_from_argv([CLEARTRACK_MAIN, command_name] + args)


if __name__ == '__main__':
    main()
