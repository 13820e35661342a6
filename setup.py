"""
location: setup.py


"""
from setuptools import setup, find_packages

setup(
    name="fpl-mcp",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastmcp>=2.2.0",
        "mcp>=1.6.0,<2",
        "httpx>=0.28.1",
        "pydantic>=2.11.3",
        "python-dotenv>=1.1.0",
        "redis>=5.0.1",
        "duckdb>=1.0.0",
        "prometheus-client>=0.20.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "mypy>=1.0.0",
            "black>=23.0.0",
            "isort>=5.0.0",
            "invoke>=2.2.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "fpl-mcp = fpl_mcp.fpl_server:main",
        ],
    },
)
