from setuptools import find_packages, setup

setup(
    name="occupancy-map-io",
    version="1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "Pillow",
        "PyYAML"
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "mapio = mapio.app:main",
        ],
    },
)
