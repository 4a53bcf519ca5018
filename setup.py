"""Setup configuration for mindustry-probe."""

from setuptools import setup, find_packages

setup(
    name="mindustry-probe",
    version="0.1.0",
    description="UDP status probe and report generator for Mindustry servers",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "requests>=2.31.0",
        "pyyaml>=6.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mindustry-probe=mindustry_probe.cli:main",
        ],
    },
)
