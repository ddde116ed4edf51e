"""Setup configuration for Rentguard content moderation engine."""

from setuptools import setup, find_packages

setup(
    name="rentguard",
    version="0.1.0",
    description="Content moderation engine for a rental marketplace",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "aiosqlite>=0.20",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "requests>=2.31",
        "openai>=1.40",
        "redis>=5.0.1",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "rentguard=rentguard.main:main",
        ],
    },
)
