from setuptools import setup, find_packages

setup(
    name="talonlang",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["talon"],
    package_data={"talonlang": ["grammar.lark"]},
    install_requires=[
        "lark",
        "pydantic>=2.0",
        "loguru>=0.7",
        "opentelemetry-api",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "talon=talon:main",
        ],
    },
    python_requires=">=3.10",
)
