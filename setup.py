# -*- coding: utf-8 -*-

from setuptools import setup, find_packages
from os import path

this_directory = path.abspath(path.dirname(__file__))
with open(path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()


def get_version():
    version_ns = {}
    with open(path.join(this_directory, 'ssht', '__version__.py'), encoding='utf-8') as f:
        exec(f.read(), version_ns)  # nosec
    return version_ns['version']


setup(
    name='ssht',
    version=get_version(),
    author='ssht developers',
    description='in-process fake ssh server for testing ssh clients',
    long_description=long_description,
    long_description_content_type='text/markdown',
    keywords="ssh test server fake mock pty",
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>= 3.10',
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: POSIX",
        "Topic :: Software Development :: Testing",
        "Topic :: System :: Networking",
        "Development Status :: 4 - Beta"
    ],
    package_data={
        'ssht': [
            'data/*.ini',
        ]
    },
    entry_points={
        'console_scripts': [
            'ssht = ssht.cli:main',
        ]
    },
    install_requires=[
        'paramiko>=3.2,<4',
        'colored',
        'rich',
        'python-json-logger',
        'wrapt'
    ],
    extras_require={
        'test': [
            'pytest'
        ]
    }
)
