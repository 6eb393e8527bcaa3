"""Setup file for development installation."""

from setuptools import setup, find_packages

setup(
    name="nexthire-chat",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.29",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "structlog>=24.1",
        "prometheus-client>=0.20",
        "opentelemetry-instrumentation-fastapi>=0.45b0",
        "PyJWT>=2.8",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
)
