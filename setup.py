from setuptools import setup, find_packages

setup(
    name="sarima-forecasting",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["run_analysis"],
    install_requires=[
        "numpy",
        "pandas>=2.0",
        "scipy",
        "arch>=5.0",
        "statsmodels>=0.13",
        "duckdb",
        "matplotlib",
        "seaborn",
        "tqdm",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.8",
)
