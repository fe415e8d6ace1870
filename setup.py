"""
Setup script for dbadapter

Install:
    pip install -e .

With test tooling:
    pip install -e ".[dev]"
"""

from setuptools import setup, find_packages

setup(
    name="dbadapter",
    version="1.0.0",
    description="Async SQL Server query adapter with pooled (pymssql) and direct (pyodbc) backends",
    author="dbadapter Contributors",
    packages=find_packages(include=["dbadapter", "dbadapter.*"]),
    python_requires=">=3.9",
    install_requires=[
        "sqlalchemy>=2.0.0",
        "pymssql>=2.2.0",
        "pyodbc>=5.0.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "click>=8.0.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dbadapter-check=dbadapter.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
        "Topic :: Software Development :: Libraries",
    ],
)
