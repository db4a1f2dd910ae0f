from setuptools import setup, find_packages

setup(
    name="service-workbench",
    version="1.0.0",
    description="Service Workbench backend: data source registration and reachability checks",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "boto3",
        "botocore",
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "python-jose[cryptography]",
        "requests",
        "jsonschema",
        "pyyaml",
        "typer",
        "rich",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "workbench=workbench.cli:main",
        ],
    },
)
