from setuptools import setup, find_packages
from pathlib import Path
import sys

# Check Python version requirement
if sys.version_info < (3, 9):
    raise RuntimeError("FtpLite requires Python 3.9 or newer")

setup(
    name="FtpLite",
    version="1.0.0",
    author="Andrew Hernandez",
    author_email="andromedeyz@hotmail.com",
    description="A lightweight async FTP client with a race-free passive-mode transfer engine.",
    long_description=(
        open("README.md", "r", encoding="utf-8").read()
        if Path("README.md").exists()
        else "FtpLite is a small asyncio FTP client that gets the hard part right: matching every command to its reply, and joining a passive data connection with the server's completion reply without stalls or false timeouts. Uploads, downloads, streaming, listings and recursive directory helpers are built on top."
    ),
    long_description_content_type="text/markdown",
    url="http://github.com/ApaxPhoenix/FtpLite",
    project_urls={
        "Bug Tracker": "http://github.com/ApaxPhoenix/FtpLite/issues",
        "Source Code": "http://github.com/ApaxPhoenix/FtpLite",
    },
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: File Transfer Protocol (FTP)",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: System :: Networking",
    ],
    python_requires=">=3.9",
    install_requires=[
        "aioftp>=0.21.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    keywords="ftp, async, asyncio, file transfer, passive mode, networking, client",
    license="MIT",
    zip_safe=False,
    include_package_data=True,
)
