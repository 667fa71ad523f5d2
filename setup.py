"""Setup file for development installation."""

from setuptools import setup, find_packages

setup(
    name="arrakis-chat-client",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0",
        "structlog",
        "websockets>=10.0",
        "markdown-it-py>=3.0",
        "mdit-py-plugins>=0.4",
        "linkify-it-py",
        "Pygments",
        "fastapi",
        "prometheus-client",
        "opentelemetry-instrumentation-fastapi",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
)
