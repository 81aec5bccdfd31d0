from setuptools import setup, find_packages

setup(
    name="agent_chat_stream",
    version="0.1.0",
    packages=find_packages(include=["activity", "activity.*", "host", "host.*", "session", "session.*", "testing", "testing.*"]),
    py_modules=["main"],
    install_requires=[
        "aiohttp>=3.9",
        "python-dotenv",
        "pydantic>=2",
        "pydantic-settings",
        "opentelemetry-api",
        "opentelemetry-sdk",
        "opentelemetry-exporter-otlp-proto-http",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-mock",
            "pytest-asyncio",
        ],
    },
    python_requires=">=3.9",
)
