from setuptools import setup, find_packages

setup(
    name="snapcleaner",
    version="0.1.0",
    description="Retention-driven VM snapshot cleanup with post-delete verification",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"snapcleaner": ["default.yaml"]},
    install_requires=[
        "click>=8.0.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "snapcleaner=snapcleaner.cli:main",
        ],
    },
    python_requires=">=3.9",
)
