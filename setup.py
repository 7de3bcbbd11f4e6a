"""Setup script for blobvault."""
from setuptools import setup, find_packages

setup(
    name="blobvault",
    version="0.1.0",
    packages=find_packages(include=["blobvault", "blobvault.*"]),
    py_modules=["cli"],
    install_requires=[
        "flask",
        "sqlalchemy>=2.0",
        "pydantic>=2",
        "boto3",
        "python-dotenv",
        "pyyaml",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "blobvault=cli:main",
        ],
    },
    python_requires=">=3.10",
)
