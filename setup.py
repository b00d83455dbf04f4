"""Setup configuration for the Casekeeper Discord moderation bot."""

from setuptools import setup, find_packages

setup(
    name="casekeeper",
    version="0.1.0",
    description="A Discord bot for moderation with a per-guild case ledger",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.6",
        "aiosqlite>=0.20",
        "python-dotenv>=1.0",
        "PyYAML>=6.0",
        "prompt_toolkit>=3.0",
        "humanize>=4.9",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "casekeeper=casekeeper.main:main",
        ],
    },
)
