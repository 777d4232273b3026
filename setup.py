"""TLS Website Fingerprinting — pip-installable package."""

from setuptools import setup, find_packages
from pathlib import Path

ROOT = Path(__file__).parent

setup(
    name="tls_fingerprint",
    version="1.0.0",
    description="Website fingerprinting of TLS sessions with a NumPy-only neural network",
    author="Luca Gandolfi",
    packages=find_packages(include=["tls_fingerprint", "tls_fingerprint.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24.0",
        "matplotlib>=3.8.0",
        "pyyaml>=6.0",
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": ["pytest>=7.4.0"],
    },
    entry_points={
        "console_scripts": [
            "tls-train=tls_fingerprint.train:main",
            "tls-predict=tls_fingerprint.predict:main",
        ],
    },
)
