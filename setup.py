# -*- coding: utf-8 -*-
"""
ldstudio
========

ldstudio_ is the processing core of a JSON-LD authoring workbench: context
resolution, the JSON-LD transformations, RDF serializations and a
lightweight SHACL checker.

.. _ldstudio: http://github.com/ldstudio/ldstudio
"""

from setuptools import setup
import os

# get meta data
about = {}
with open(os.path.join(
        os.path.dirname(__file__), 'lib', 'ldstudio', '__about__.py')) as fp:
    exec(fp.read(), about)

with open(os.path.join(os.path.dirname(__file__), 'README.rst')) as fp:
    long_description = fp.read()

setup(
    name='ldstudio',
    version=about['__version__'],
    description='JSON-LD workbench core: transformations, RDF and SHACL',
    long_description=long_description,
    author='ldstudio contributors',
    url='http://github.com/ldstudio/ldstudio',
    packages=['ldstudio', 'ldstudio.documentloader'],
    package_dir={'': 'lib'},
    license='BSD 3-Clause license',
    python_requires='>=3.8',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'Environment :: Web Environment',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: BSD License',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Topic :: Internet',
        'Topic :: Software Development :: Libraries',
    ],
    install_requires=[
        'pyyaml',
        'rdflib>=6.2',
    ],
    extras_require={
        'requests': ['requests'],
        'aiohttp': ['aiohttp'],
        'test': ['pytest', 'requests'],
    },
    entry_points={
        'console_scripts': [
            'ldstudio = ldstudio.cli:main',
        ],
    },
)
