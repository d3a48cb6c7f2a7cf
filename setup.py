from setuptools import setup, find_packages

setup(
    name="veriproof",
    version="0.1.0",
    description="VeriProof — Hoare-logic proof construction and verification engine",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "z3-solver>=4.12.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "hypothesis>=6.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "veriproof=veriproof.cli:main",
        ],
    },
)
