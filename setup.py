"""
Setup script for the PDF/raster reader.

This script configures the package for installation via pip.
Supports both development and production installations.
"""

from setuptools import setup, find_packages

setup(
    name="pdfraster-reader",
    version="1.0.0",
    description="Reader for PDF/raster files: page raster metadata and raw strip access",
    long_description=(
        "Opens PDF/raster files through a pluggable byte source, reports each page's "
        "pixel format, size, rotation, resolution and compression, and hands back the "
        "raw encoded bytes of every image strip."
    ),
    author="PDF/raster Reader Contributors",
    author_email="",
    package_dir={"": "packages"},
    packages=find_packages("packages"),
    install_requires=[
        "pypdf>=3.0.0",
        "click>=8.0.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "pdfraster=pdfraster.cli.main:cli",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Multimedia :: Graphics :: Graphics Conversion",
        "Topic :: Utilities",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Operating System :: OS Independent",
        "Environment :: Console",
    ],
    keywords="pdf raster pdf-raster scan strips reader",
    license="MIT",
    include_package_data=True,
    zip_safe=False,
)
