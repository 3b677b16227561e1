#!/usr/bin/env python
""" An in-memory query engine for document stores: filters, search, sorting, pagination, and joins """

from setuptools import setup, find_packages

setup(
    name='docquery',
    version='1.0.0',
    author='docquery contributors',

    license='BSD',
    description=__doc__,
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    keywords=['firestore', 'document', 'query', 'search', 'sqlalchemy'],

    packages=find_packages(exclude=('tests',)),
    scripts=[],
    entry_points={},

    python_requires='>= 3.7',
    install_requires=[
        'sqlalchemy >= 1.4',
        'python-dateutil',
    ],
    extras_require={
        'flask': ['flask >= 2.0'],
        'firestore': ['google-cloud-firestore >= 2.11'],
        'test': [
            'pytest',
            'pytest-cov',
            'flask >= 2.0',
            'google-cloud-firestore >= 2.11',
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
        'Topic :: Database :: Front-Ends',
        'Topic :: Software Development :: Libraries :: Python Modules',
    ],
)
