import setuptools

try:
    with open("README.md", "r", encoding="utf-8") as fh:
        long_description = fh.read()
except FileNotFoundError:
    long_description = "Bundle and deploy Edge Functions"

setuptools.setup(
    name="edgefn",
    version="0.1.0",
    description="Bundle and deploy Edge Functions",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=setuptools.find_packages(where="src", include=["edgefn", "edgefn.*"]),
    install_requires=[
        "Brotli>=1.1.0",
        "httpx>=0.25",
        "pydantic>=2.0",
        "python-dotenv",
        "rich",
        "tomli; python_version < '3.11'",
        "typer>=0.9",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "edgefn=edgefn.cli.main:app",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
)
