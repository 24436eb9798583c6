"""Setup file for development installation."""

from setuptools import setup, find_packages

setup(
    name="multimodal-chat",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "fastapi",
        "uvicorn",
        "python-multipart",
        "pydantic>=2.5",
        "pydantic-settings>=2.7",
        "structlog",
        "google-generativeai",
        "prometheus-client",
        "opentelemetry-instrumentation-fastapi",
        "python-jose[cryptography]",
        "httpx",
    ],
    entry_points={
        "console_scripts": ["multimodal-chat=multimodal_chat.__main__:main"],
    },
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
)
