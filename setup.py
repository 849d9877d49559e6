#!/usr/bin/env python3

from os import path

from setuptools import setup

from gitvis import __version__

this_directory = path.abspath(path.dirname(__file__))
with open(path.join(this_directory, 'README.md'), mode="r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name='gitvis',
    version=__version__,
    description='Infers and displays the tree of branch dependencies of a GitHub repository',
    long_description=long_description,
    long_description_content_type='text/markdown',
    license='MIT',
    keywords='git github branches',
    packages=['gitvis'],
    entry_points={
        'console_scripts': [
            'gitvis = gitvis.cli:main'
        ]
    },
    python_requires='>=3.8, <4',
    extras_require={
        'test': ['pytest', 'pytest-mock'],
    },
    classifiers=[
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent'
    ],
    options={'bdist_wheel': {'universal': False}},
    include_package_data=True
)
