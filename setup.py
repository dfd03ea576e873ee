from setuptools import setup, find_packages

setup(
    name="krb-operator",
    version="0.1.0",
    description="Kubernetes operator for managing Kerberos KDC custom resources",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.11",
    install_requires=[
        "kopf>=1.37.0",
        "kubernetes>=28.1.0",
        "pyyaml>=6.0",
        "pydantic>=2.5",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "krb-operator=krb_operator.operator:main",
        ],
    },
)
