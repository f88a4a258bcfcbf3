"""
Setup script for the cafe_db_ops package.
"""

from setuptools import setup, find_packages

setup(
    name="cafe_db_ops",
    version="0.1.0",
    description="Resilient MongoDB connection management for the cafe ordering backend",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["cafe_db_client", "cafe_db_exceptions"],
    install_requires=[
        "pymongo>=4.13.0",
        "dnspython>=2.6.0",
        "pydantic>=2.0.0,<3.0.0",
        "pydantic-settings>=2.0.0",
        "pydantic-yaml>=1.1.0",
        "pyyaml>=6.0",
        "tenacity>=8.2.0",  # For retry logic
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-cov>=4.0.0",
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
            "flake8>=6.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "cafe-db-diagnostics=diagnostics.__main__:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
)
