"""Setup configuration for the RADIUS scenario runner."""

from setuptools import setup, find_packages

setup(
    name="radius-scenario-runner",
    version="0.1.0",
    description="Scenario execution engine for RADIUS server testing",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "requests>=2.31.0",
        "pyyaml>=6.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "scenario-runner=scenario_runner.cli:main",
        ],
    },
)
