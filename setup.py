#!/usr/bin/env python3

# python setup.py sdist --format=zip,gztar

import sys
import importlib.util

from setuptools import setup

MIN_PYTHON_VERSION = "3.8.0"
_min_python_version_tuple = tuple(map(int, (MIN_PYTHON_VERSION.split("."))))


if sys.version_info[:3] < _min_python_version_tuple:
    sys.exit("Error: bip322 requires Python version >= %s..." % MIN_PYTHON_VERSION)

with open('contrib/requirements/requirements.txt') as f:
    requirements = f.read().splitlines()

with open('contrib/requirements/requirements-tests.txt') as f:
    requirements_tests = f.read().splitlines()

# load version.py; needlessly complicated alternative to "imp.load_source":
version_spec = importlib.util.spec_from_file_location('version', 'bip322/version.py')
version_module = version = importlib.util.module_from_spec(version_spec)
version_spec.loader.exec_module(version_module)

extras_require = {
    'tests': requirements_tests,
}


setup(
    name="bip322",
    version=version.BIP322_VERSION,
    python_requires='>={}'.format(MIN_PYTHON_VERSION),
    install_requires=requirements,
    extras_require=extras_require,
    packages=['bip322'],
    package_dir={
        'bip322': 'bip322'
    },
    scripts=['run_bip322'],
    description="BIP-322 generic signed messages, with BIP-137 compatibility",
    license="MIT Licence",
    long_description="""Sign and verify Bitcoin messages for p2pkh, p2wpkh-p2sh, p2wpkh and p2tr addresses""",
)
