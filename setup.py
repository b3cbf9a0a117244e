"""
Setup script for crab_analysis package
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file for long description
readme_file = Path(__file__).parent / "README.md"
if readme_file.exists():
    long_description = readme_file.read_text(encoding='utf-8')
else:
    long_description = "Carapace size estimation and isotope analysis of freshwater crab dactyls"

setup(
    name="crab_analysis",
    version="0.1.0",
    description="Carapace size estimation from dactyl measurements and isotope analysis of freshwater crabs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Crab Analysis Project",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.20",
        "pandas>=1.3",
        "scipy>=1.7",
        "statsmodels>=0.13",
        "matplotlib>=3.4",
        "seaborn>=0.12",
        "geopandas>=0.14",
        "shapely>=2.0",
        "pyproj>=3.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    keywords="zooarchaeology crabs isotopes regression",
)
