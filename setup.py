from setuptools import find_packages, setup

setup(
    name="rulescope",
    version="0.3.0",
    description="Topology reconstruction, layered layout and metrics correlation for stream-processing rules",
    packages=find_packages(include=["rulescope", "rulescope.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0",
        "PyYAML>=6.0",
        "rich>=13.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
)
