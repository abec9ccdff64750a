from setuptools import setup, find_packages

setup(
    name="etig_bootstrap",
    version="0.1.0",
    packages=find_packages(exclude=["integration_tests"]),
    install_requires=[
        "requests",  # For InfluxDB and Grafana HTTP APIs
        "pytest",  # For testing
    ],
    entry_points={
        "console_scripts": [
            "etig-bootstrap=etig_bootstrap.startup.bootstrap:main",
        ],
    },
    python_requires=">=3.8",
)
