from setuptools import setup, find_packages

setup(
    name="helpai-gateway",
    version="0.1.0",
    packages=find_packages(include=["helpai", "helpai.*"]),
    python_requires=">=3.12",
    install_requires=[
        "fastapi",
        "httpx",
        "openai>=1.0",
        "pydantic>=2",
        "pydantic-settings>=2.7",
        "uvicorn",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
)
