#!/usr/bin/env python3

import os
import subprocess
import sys

from setuptools import setup, find_packages
from setuptools.command.develop import develop

from cleartrack import get_package_version


# Make sure this is a version of Python we are compatible with. This should
# prevent people on older versions from unintentionally trying to install
# the source tarball, and failing.
if sys.version_info < (3, 10):
    sys.stderr.write(
        'cleartrack %s is incompatible with your version of Python.\n'
        'Please use Python 3.10+.\n'
        % get_package_version())
    sys.exit(1)


cleartrack_commands = [
    'changes = cleartrack.commands.changes:Changes',
    'clear-cache = cleartrack.commands.clearcache:ClearCache',
    'content = cleartrack.commands.content:Content',
    'label = cleartrack.commands.label:Label',
    'patch = cleartrack.commands.patch:Patch',
    'test-connection = cleartrack.commands.test_connection:TestConnection',
]


PACKAGE_NAME = 'cleartrack'

with open('README.md') as fp:
    long_description = fp.read()


class DevelopCommand(develop):
    """Installs cleartrack in developer mode.

    This will install all standard and test dependencies and add the source
    tree to the Python module search path.
    """

    def install_for_development(self):
        """Install the package for development.

        This takes care of the work of installing all dependencies.
        """
        if self.no_deps:
            # This is how we know we've been called by `pip install -e .`,
            # which handles dependency installation itself.
            develop.install_for_development(self)
            return

        self._run_pip(['install', '-e', '.[test]'])

    def _run_pip(self, args):
        """Run pip.

        Args:
            args (list):
                Arguments to pass to :command:`pip`.

        Raises:
            RuntimeError:
                The :command:`pip` command returned a non-zero exit code.
        """
        cmd = subprocess.list2cmdline([sys.executable, '-m', 'pip'] + args)
        ret = os.system(cmd)

        if ret != 0:
            raise RuntimeError('Failed to run `%s`' % cmd)


setup(
    name=PACKAGE_NAME,
    version=get_package_version(),
    license='MIT',
    description=(
        'Change collection, patch building and labelling for ClearCase '
        'views'
    ),
    long_description=long_description,
    long_description_content_type='text/markdown',
    entry_points={
        'console_scripts': [
            'cleartrack = cleartrack.commands.main:main',
        ],
        'cleartrack_commands': cleartrack_commands,
    },
    install_requires=[
        'colorama',
        'importlib-metadata>=4.12',
        'texttable',
        'tqdm',
        'typing_extensions>=4.3.0',
    ],
    extras_require={
        'test': [
            'kgb>=7.1',
            'pytest',
        ],
    },
    packages=find_packages(),
    include_package_data=True,
    cmdclass={
        'develop': DevelopCommand,
    },
    python_requires='>=3.10',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Natural Language :: English',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Software Development',
        'Topic :: Software Development :: Version Control',
    ],
)
