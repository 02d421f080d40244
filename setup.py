from setuptools import setup, find_packages


setup(
    name="asarkit",
    version="0.1",
    packages=find_packages(include=["asarkit", "asarkit.*"]),
    description="Reader and writer for the asar archive format (JSON header + concatenated file data).",
    python_requires=">=3.8",
    install_requires=[
        "toml>=0.10.2",
    ],
    entry_points={
        "console_scripts": [
            "asar=asarkit.cli:main",
        ]
    },
)
