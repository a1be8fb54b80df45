"""
The setup.py file is a command line application built with setuptools.

It can be executed directly with python: `python setup.py --help`

The call to setuptools.setup (below) describes this python package and
enables all of the build, package, dist, install functionality required
to package this code for all the standard python tools like pip and pipenv
"""
from setuptools import setup, find_packages

setup(
    name="kontext",
    description="Publish a local build context to a container registry, incrementally.",
    version="0.1.0",
    packages=find_packages(include=["kontext", "kontext.*"]),
    python_requires=">=3.8",
    install_requires=[
        "colorama",
        "requests",
        "sentry-sdk",
        "structlog",
        "typing_extensions",
    ],
    extras_require={"test": ["pytest", "py"]},
    entry_points={"console_scripts": ["kontext=kontext.cli:main"]},
    zip_safe=True,
)
