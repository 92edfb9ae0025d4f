#!/usr/bin/env python
""" A fluent query builder and a relation-aware model layer for MongoDB """

from setuptools import setup, find_packages

setup(
    name='mongoloquent',
    version='1.0.0',
    author='Mongoloquent contributors',

    url='https://github.com/mongoloquent/py-mongoloquent',
    license='BSD',
    description=__doc__,
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    keywords=['mongodb', 'pymongo', 'orm', 'query builder'],

    packages=find_packages(exclude=('tests',)),
    scripts=[],
    entry_points={},

    python_requires='>= 3.9',
    install_requires=[
        'pymongo >= 4.0',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-cov',
            'nox',
            'tzdata',
        ],
    },
    include_package_data=True,

    platforms='any',
    classifiers=[
        # https://pypi.python.org/pypi?%3Aaction=list_classifiers
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Natural Language :: English',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Database',
        'Topic :: Software Development :: Libraries :: Python Modules',
    ],
)
