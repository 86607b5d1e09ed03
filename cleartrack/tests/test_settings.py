"""Unit tests for cleartrack.settings."""

import os

from cleartrack.errors import ConfigInvalidError
from cleartrack.settings import (CONFIG_FILENAME,
                                 ConfigSyntaxError,
                                 EngineConfig,
                                 VcsRootSettings,
                                 get_config_paths,
                                 load_config,
                                 parse_config_file,
                                 validate_properties)
from cleartrack.testing import TestCase
from cleartrack.utils.filesystem import make_tempdir


class VcsRootSettingsTests(TestCase):
    """Unit tests for VcsRootSettings."""

    def test_from_properties(self):
        """Testing VcsRootSettings.from_properties"""
        settings = VcsRootSettings.from_properties({
            'view-path': '/view/vobs/proj',
            'TYPE': 'BASE',
            'use-global-label': 'true',
            'global-labels-vob': '/vobs/labels',
            'relative-path': 'src',
        })

        self.assertEqual(
            settings,
            VcsRootSettings(view_path='/view/vobs/proj',
                            is_ucm=False,
                            use_global_label=True,
                            global_labels_vob='/vobs/labels',
                            relative_path='src'))

    def test_from_properties_defaults(self):
        """Testing VcsRootSettings.from_properties with defaults"""
        settings = VcsRootSettings.from_properties({
            'view-path': '/view/vobs/proj',
        })

        self.assertTrue(settings.is_ucm)
        self.assertFalse(settings.use_global_label)
        self.assertIsNone(settings.global_labels_vob)
        self.assertIsNone(settings.relative_path)

    def test_from_properties_invalid(self):
        """Testing VcsRootSettings.from_properties with invalid properties"""
        with self.assertRaises(ConfigInvalidError) as ctx:
            VcsRootSettings.from_properties({
                'use-global-label': 'true',
            })

        self.assertEqual(
            ctx.exception.invalid_properties,
            [
                ('view-path', 'View path must be specified'),
                ('global-labels-vob', 'Global labels VOB must be specified'),
            ])

    def test_to_properties(self):
        """Testing VcsRootSettings.to_properties"""
        settings = VcsRootSettings(view_path='/view/vobs/proj',
                                   is_ucm=False)

        self.assertEqual(settings.to_properties(), {
            'view-path': '/view/vobs/proj',
            'TYPE': 'BASE',
            'use-global-label': 'false',
        })
        self.assertEqual(settings.describe(), 'clearcase: /view/vobs/proj')


class ValidatePropertiesTests(TestCase):
    """Unit tests for validate_properties."""

    def test_valid(self):
        """Testing validate_properties with valid properties"""
        self.assertEqual(
            validate_properties({'view-path': '/view/vobs/proj/src'},
                                view_root='/view'),
            [])

    def test_vob_root(self):
        """Testing validate_properties with a VOB root as view path"""
        for view_path in ('/view/vobs/proj', '/view/proj'):
            self.assertEqual(
                validate_properties({'view-path': view_path},
                                    view_root='/view'),
                [(
                    'view-path',
                    'Please select some project directory inside the VOB '
                    'one, not the VOB root directory itself',
                )])

    def test_blank_view_path(self):
        """Testing validate_properties with a blank view path"""
        self.assertEqual(validate_properties({'view-path': '   '}),
                         [('view-path', 'View path must be specified')])


class EngineConfigTests(TestCase):
    """Unit tests for EngineConfig."""

    def test_defaults(self):
        """Testing EngineConfig defaults"""
        config = EngineConfig()

        self.assertIsNone(config.CLEARTOOL_EXECUTABLE)
        self.assertFalse(config.DISABLE_CACHES)
        self.assertFalse(config['OPTIMIZE_INITIAL_CHECKOUT'])
        self.assertIn('CACHES_DIR', config)
        self.assertNotIn('UNKNOWN', config)
        self.assertIsNone(config.get('UNKNOWN'))

    def test_from_properties(self):
        """Testing EngineConfig.from_properties"""
        config = EngineConfig.from_properties({
            'cleartool.executable.path': '/opt/rational/bin/cleartool',
            'clearcase.disable.caches': 'TRUE',
            'clearcase.optimize.initial.checkout': 'false',
            'something.else': 'ignored',
        })

        self.assertEqual(config.CLEARTOOL_EXECUTABLE,
                         '/opt/rational/bin/cleartool')
        self.assertIs(config.DISABLE_CACHES, True)
        self.assertIs(config.OPTIMIZE_INITIAL_CHECKOUT, False)
        self.assertEqual(config.to_properties(), {
            'cleartool.executable.path': '/opt/rational/bin/cleartool',
            'clearcase.disable.caches': 'true',
            'clearcase.optimize.initial.checkout': 'false',
        })

    def test_merge(self):
        """Testing EngineConfig.merge"""
        config = EngineConfig(config_dict={
            'DISABLE_CACHES': True,
            'CACHES_DIR': '/tmp/a',
        })
        config.merge(EngineConfig(config_dict={
            'CACHES_DIR': '/tmp/b',
        }))

        self.assertTrue(config.DISABLE_CACHES)
        self.assertEqual(config.CACHES_DIR, '/tmp/b')

    def test_copy(self):
        """Testing EngineConfig.copy"""
        config = EngineConfig(config_dict={'DISABLE_CACHES': True})
        copy = config.copy()

        self.assertEqual(config, copy)

        copy.merge(EngineConfig(config_dict={'DISABLE_CACHES': False}))
        self.assertTrue(config.DISABLE_CACHES)


class LoadConfigTests(TestCase):
    """Unit tests for loading configuration files."""

    needs_temp_home = True

    def _write_config(self, path, content):
        filename = os.path.join(path, CONFIG_FILENAME)

        with open(filename, 'w') as fp:
            fp.write(content)

        return os.path.realpath(filename)

    def test_parse_config_file(self):
        """Testing parse_config_file"""
        filename = self._write_config(
            make_tempdir(),
            'DISABLE_CACHES = True\n'
            'CACHES_DIR = "/tmp/" + "caches"\n')

        config = parse_config_file(filename)

        self.assertEqual(config.filename, filename)
        self.assertTrue(config.DISABLE_CACHES)
        self.assertEqual(config.CACHES_DIR, '/tmp/caches')

    def test_parse_config_file_syntax_error(self):
        """Testing parse_config_file with a syntax error"""
        filename = self._write_config(make_tempdir(),
                                      'DISABLE_CACHES = = True\n')

        with self.assertRaises(ConfigSyntaxError) as ctx:
            parse_config_file(filename)

        self.assertEqual(ctx.exception.line, 1)

    def test_get_config_paths(self):
        """Testing get_config_paths ordering"""
        home = os.environ['HOME']
        home_config = self._write_config(home, 'DISABLE_CACHES = True\n')

        project_dir = os.path.join(home, 'project')
        work_dir = os.path.join(project_dir, 'work')
        os.makedirs(work_dir)
        project_config = self._write_config(project_dir,
                                            'DISABLE_CACHES = False\n')
        os.chdir(work_dir)

        self.assertEqual(get_config_paths(), [project_config, home_config])

    def test_load_config(self):
        """Testing load_config precedence"""
        home = os.environ['HOME']
        self._write_config(home,
                           'DISABLE_CACHES = True\n'
                           'CACHES_DIR = "/tmp/home"\n')

        project_dir = os.path.join(home, 'project')
        os.makedirs(project_dir)
        self._write_config(project_dir, 'CACHES_DIR = "/tmp/project"\n')
        os.chdir(project_dir)

        config = load_config(properties={
            'clearcase.disable.caches': 'false',
        })

        self.assertFalse(config.DISABLE_CACHES)
        self.assertEqual(config.CACHES_DIR, '/tmp/project')

    def test_load_config_explicit_file(self):
        """Testing load_config with an explicit file"""
        self._write_config(os.environ['HOME'], 'DISABLE_CACHES = True\n')
        filename = self._write_config(make_tempdir(),
                                      'CACHES_DIR = "/tmp/explicit"\n')

        config = load_config(filename)

        self.assertFalse(config.DISABLE_CACHES)
        self.assertEqual(config.CACHES_DIR, '/tmp/explicit')
