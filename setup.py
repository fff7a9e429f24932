from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="nongki",
    version="0.1.0",
    author="Nongki Team",
    description="Hangout sessions with friend notifications over APNs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Framework :: FastAPI",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.104.1",
        "uvicorn[standard]>=0.24.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "python-dotenv>=1.0.0",
        "sqlalchemy>=2.0.23",
        "httpx[http2]>=0.25.2",
        "PyJWT>=2.8.0",
        "cryptography>=43.0.1",
        "tenacity>=8.2.3",
        "structlog>=23.2.0",
        "sentry-sdk[fastapi]>=1.39.0",
        "prometheus-client>=0.19.0",
        "click>=8.1.7",
        "rich>=13.7.0",
    ],
    extras_require={
        "tests": [
            "pytest>=7.4.3",
            "pytest-asyncio>=0.21.1",
        ],
    },
    entry_points={
        "console_scripts": [
            "nongki=nongki.cli:cli",
        ],
    },
)
