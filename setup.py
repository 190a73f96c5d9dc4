from setuptools import setup, find_packages

setup(
    name="ps-epistasis",
    version="0.1.0",
    description="Pure epistasis detection with propensity scores and stability selection",
    packages=find_packages(include=["ps_epistasis", "ps_epistasis.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pandas>=2.0",
        "numpy>=1.24",
        "scikit-learn>=1.3",
        "scipy>=1.10",
        "statsmodels>=0.14",
        "joblib>=1.3",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "ps-epistasis=ps_epistasis.cli:main"
        ]
    },
    include_package_data=True,
)
