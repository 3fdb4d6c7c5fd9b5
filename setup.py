"""
BiliSummary — setuptools build script.

Usage:
    pip install -e .            # development install

Installs the `bilisummary` console script.
"""

from setuptools import setup, find_namespace_packages

APP_NAME = "bilisummary"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Bilibili video summarizer: subtitles or speech recognition, then an LLM summary",
    packages=find_namespace_packages(include=["bilisummary", "bilisummary.*"]),
    install_requires=[
        "requests>=2.28.0",
    ],
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "bilisummary=bilisummary.cli:main",
        ],
    },
)
