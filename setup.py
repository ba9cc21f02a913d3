from setuptools import setup, find_namespace_packages

setup(
    name="blimp",
    version="0.1.0",
    packages=find_namespace_packages(include=["blimp", "blimp.*"]),
    include_package_data=True,
    install_requires=[
        "rich",
        "requests",
        "python-dotenv",
        "toml",
        "rich-argparse",
        "pynacl",
        "asn1crypto",
        "PyJWT",
        "cryptography",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "blimp=blimp.cli:main",
        ],
    },
)
