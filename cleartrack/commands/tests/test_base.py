"""Unit tests for cleartrack.commands.base."""

from __future__ import annotations

import argparse
import io
import logging

from cleartrack.commands.base import (BaseCommand,
                                      CommandError,
                                      CommandExit,
                                      Option,
                                      UsageError)
from cleartrack.commands.base.commands import LogLevelFilter
from cleartrack.commands.base.output import JSONOutput, OutputWrapper
from cleartrack.errors import ClearCaseError
from cleartrack.settings import EngineConfig
from cleartrack.testing import CommandTestsMixin, TestCase


class _DummyCommand(BaseCommand):
    name = 'dummy'
    needs_support = False

    args = '<action>'

    def main(self, action):
        if action == 'fail':
            raise CommandError('Something went wrong')
        elif action == 'vcs-fail':
            raise ClearCaseError('The view is gone')
        elif action == 'crash':
            raise ValueError('bad value')
        elif action == 'exit':
            raise CommandExit(3)
        elif action == 'conflict':
            raise UsageError('Can\'t do that here', 'action')

        self.stdout.write('Did %s' % action)
        self.json.add('action', action)

        return 0


class JSONOutputTests(TestCase):
    """Unit tests for JSONOutput."""

    def setUp(self):
        super().setUp()

        self.stream = io.StringIO()
        self.json = JSONOutput(self.stream)

    def test_add(self):
        """Testing JSONOutput.add"""
        self.json.add('key', 'value')

        self.assertEqual(self.json.raw, {'key': 'value'})

    def test_append(self):
        """Testing JSONOutput.append creates and extends lists"""
        self.json.append('items', 1)
        self.json.append('items', 2)

        self.assertEqual(self.json.raw, {'items': [1, 2]})

    def test_add_error(self):
        """Testing JSONOutput.add_error"""
        self.json.add_error('error 1')
        self.json.add_error('error 2')

        self.assertEqual(self.json.raw['errors'], ['error 1', 'error 2'])

    def test_print_to_stream(self):
        """Testing JSONOutput.print_to_stream"""
        self.json.add('b', 2)
        self.json.add('a', 1)
        self.json.print_to_stream()

        self.assertEqual(self.stream.getvalue(),
                         '{\n    "a": 1,\n    "b": 2\n}\n')


class OutputWrapperTests(TestCase):
    """Unit tests for OutputWrapper."""

    def test_write(self):
        """Testing OutputWrapper.write"""
        stream = io.StringIO()
        wrapper = OutputWrapper(stream)

        wrapper.write('line 1')
        wrapper.write('line 2', end='')
        wrapper.new_line()

        self.assertEqual(stream.getvalue(), 'line 1\nline 2\n')

    def test_write_silenced(self):
        """Testing OutputWrapper.write with no output stream"""
        wrapper = OutputWrapper(io.StringIO())
        wrapper.output_stream = None

        wrapper.write('ignored')


class LogLevelFilterTests(TestCase):
    """Unit tests for LogLevelFilter."""

    def test_filter(self):
        """Testing LogLevelFilter.filter only passes its own level"""
        log_filter = LogLevelFilter(logging.WARNING)

        def _record(level):
            return logging.LogRecord('test', level, __file__, 1, 'msg',
                                     None, None)

        self.assertTrue(log_filter.filter(_record(logging.WARNING)))
        self.assertFalse(log_filter.filter(_record(logging.ERROR)))
        self.assertFalse(log_filter.filter(_record(logging.INFO)))


class OptionTests(TestCase):
    """Unit tests for Option."""

    def test_add_to(self):
        """Testing Option.add_to"""
        parser = argparse.ArgumentParser()
        Option('--thing', dest='thing', default='x').add_to(parser)

        self.assertEqual(parser.parse_args([]).thing, 'x')
        self.assertEqual(parser.parse_args(['--thing', 'y']).thing, 'y')

    def test_add_to_with_config(self):
        """Testing Option.add_to with a configured default"""
        config = EngineConfig(config_dict={
            'CLEARTOOL_EXECUTABLE': '/opt/rational/bin/cleartool',
        })
        parser = argparse.ArgumentParser()
        Option('--cleartool',
               dest='cleartool',
               config_key='CLEARTOOL_EXECUTABLE',
               default=None).add_to(parser, config)

        self.assertEqual(parser.parse_args([]).cleartool,
                         '/opt/rational/bin/cleartool')


class BaseCommandTests(CommandTestsMixin[_DummyCommand], TestCase):
    """Unit tests for BaseCommand."""

    command_cls = _DummyCommand

    def test_run(self):
        """Testing BaseCommand.run_from_argv"""
        result = self.run_command(['build'])

        self.assertEqual(result['exit_code'], 0)
        self.assertEqual(result['stdout'], b'Did build\n')

    def test_run_json(self):
        """Testing BaseCommand.run_from_argv with --json"""
        result = self.run_command(['--json', 'build'])

        self.assertEqual(result['exit_code'], 0)
        self.assertEqual(result['json'], {
            'action': 'build',
            'status': 'success',
        })

    def test_run_command_error(self):
        """Testing BaseCommand.run_from_argv with a CommandError"""
        result = self.run_command(['--json', 'fail'])

        self.assertEqual(result['exit_code'], 1)
        self.assertEqual(result['json'], {
            'errors': ['Something went wrong'],
            'status': 'failed',
        })

    def test_run_clearcase_error(self):
        """Testing BaseCommand.run_from_argv with a ClearCaseError"""
        result = self.run_command(['vcs-fail'])

        self.assertEqual(result['exit_code'], 1)
        self.assertIn(b'ERROR: The view is gone', result['stderr'])

    def test_run_internal_error(self):
        """Testing BaseCommand.run_from_argv with an unexpected error"""
        result = self.run_command(['--json', 'crash'])

        self.assertEqual(result['exit_code'], 1)
        self.assertEqual(result['json']['errors'],
                         ['Internal error: ValueError: bad value'])

    def test_run_command_exit(self):
        """Testing BaseCommand.run_from_argv with CommandExit"""
        result = self.run_command(['exit'])

        self.assertEqual(result['exit_code'], 3)

    def test_run_usage_error(self):
        """Testing BaseCommand.run_from_argv with a UsageError"""
        result = self.run_command(['--json', 'conflict'])

        self.assertEqual(result['exit_code'], 2)
        self.assertEqual(result['json'], {})

    def test_run_wrong_arguments(self):
        """Testing BaseCommand.run_from_argv with the wrong number of
        arguments
        """
        result = self.run_command([])

        self.assertEqual(result['exit_code'], 2)

    def test_cleartool_option(self):
        """Testing BaseCommand.initialize with --cleartool"""
        result = self.run_command(['--cleartool', '/bin/ct', 'build'])

        self.assertEqual(result['command'].config.CLEARTOOL_EXECUTABLE,
                         '/bin/ct')

    def test_usage(self):
        """Testing BaseCommand.usage"""
        self.assertEqual(_DummyCommand().usage(),
                         '%(prog)s dummy [options] <action>')
