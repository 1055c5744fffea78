from pathlib import Path
from setuptools import setup


ROOT = Path(__file__).parent


def read_version() -> str:
    """Read ``__version__`` from the package without importing it."""
    init = ROOT / "alice_oracle" / "__init__.py"
    for line in init.read_text(encoding="utf-8").splitlines():
        if line.startswith("__version__"):
            return line.split("=", 1)[1].strip().strip("\"'")
    return "0.0.0"


setup(
    name="alice-oracle",
    version=read_version(),
    description="Discovery, enrichment and heuristic scoring of newly listed Solana tokens",
    python_requires=">=3.11",
    packages=["alice_oracle", "alice_oracle.providers"],
    install_requires=[
        "aiohttp>=3.9",
        "websockets>=12",
        "orjson>=3.9",
        "pydantic>=2.5",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "alice-oracle=alice_oracle.cli:main",
        ],
    },
)
