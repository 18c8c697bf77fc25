"""
Vigil - Camera Activity Reasoning
Turn camera detections into tracked entities, learned routines and notifications
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

setup(
    name="vigil",
    version="0.1.0",
    description="Identity tracking, routine learning and notification reasoning for home cameras",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["vigil", "vigil.*"]),
    python_requires=">=3.11",
    install_requires=[
        # ML/AI
        "scikit-learn>=1.2.2",

        # API/Web
        "httpx>=0.28.0",

        # CLI/UI
        "rich>=14.1.0",

        # Utilities
        "numpy>=1.26.4",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "black>=23.0.0",
            "ruff>=0.13.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "vigil=vigil.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Home Automation",
        "Topic :: Multimedia :: Video",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
