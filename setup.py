from setuptools import setup, find_packages

setup(
    name="gauge-obs",
    version="0.1.0",
    description="Streamflow gauge observation preparation for data assimilation",
    author="onWater Engineering Team",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.22",
        "pandas>=2.0",
        "pydantic>=2.0",
        "python-dotenv>=1.0",
        "pyyaml>=6.0",
        "scipy>=1.10",
        "xarray>=2023.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytz",
        ],
    },
)
