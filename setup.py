#!/usr/bin/python3

from setuptools import find_packages, setup

with open("README.md", "r") as f:
    readme = f.read()

setup(
    name="pmt",
    version="0.4.0",
    packages=find_packages(exclude=["tests"]),
    package_data={"pmt": ["schema.yml"]},
    install_requires=[
        "colorama",
        "jsonschema",
        "pyyaml",
        "zstandard",  # For .pkg.tar.zst and zstd compressed sync databases.
    ],
    extras_require={
        "test": [
            "pytest",
            "black",
            "flake8",
            "pep8-naming",
            "flake8-isort",
        ]
    },
    entry_points={
        "console_scripts": [
            "pmt = pmt:main",
        ]
    },
    # Package metadata.
    license="MIT",
    long_description=readme,
    long_description_content_type="text/markdown",
)
