"""
Setup script for certprep-engine.

certprep is the adaptive learning and assessment engine behind a
certification exam-prep product. It is a library boundary only:

1. Mastery & Readiness - per-objective mastery, readiness and pass probability
2. Practice Delivery - spaced-repetition scheduling and adaptive question selection
3. Exams & Progression - weighted exam scoring, XP, levels and streaks
"""

from setuptools import find_packages, setup

setup(
    name="certprep-engine",
    version="0.1.0",
    description="Adaptive learning and assessment engine for certification exam prep",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["certprep", "certprep.*"]),
    python_requires=">=3.11",
    install_requires=[
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition sm2 adaptive-testing certification education",
)
