"""Setup script for the Kassa checkout integration."""

from setuptools import setup, find_packages

setup(
    name="kassa-checkout",
    version="1.4.0",
    description="Payment gateway checkout integration with authorize/capture reconciliation",
    author="ML Roadmap Bootcamp",
    python_requires=">=3.10",
    packages=find_packages(include=["kassa_checkout", "kassa_checkout.*"]),
    install_requires=[
        "fastapi>=0.110.0",
        "uvicorn[standard]>=0.27.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "structlog>=24.1.0",
        "python-json-logger>=2.0.7",
        "tenacity>=8.2.0,<8.4",
        "httpx>=0.27.0",
        "prometheus-client>=0.19.0",
        "sqlalchemy[asyncio]>=2.0.25",
        "aiosqlite>=0.19.0",
        "asyncpg>=0.29.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
        ],
        "dev": [
            "black>=23.0.0",
            "isort>=5.12.0",
            "flake8>=6.0.0",
            "mypy>=1.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "kassa-checkout=kassa_checkout.api.main:main",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Framework :: FastAPI",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
