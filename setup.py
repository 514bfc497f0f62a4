"""
Setup configuration for poped-optim.
"""

from setuptools import setup, find_namespace_packages

setup(
    name="poped-optim",
    version="0.1.0",
    description="Multi-method optimizer for population optimal design",
    author="poped-optim Contributors",
    packages=find_namespace_packages(include=["src", "src.*"]),
    python_requires=">=3.11",
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
    ],
    extras_require={
        "ga": [
            "pymoo>=0.6",
        ],
        "dev": [
            "pytest",
            "pytest-cov",
            "pymoo>=0.6",
        ],
    },
)
