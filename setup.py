from setuptools import find_packages, setup

setup(
    name="storefront-telemetry",
    version="1.0.0",
    packages=[p for p in find_packages() if "tests" not in p],
    package_data={"storefront_telemetry.core": ["configs/*.yaml"]},
    python_requires=">=3.9",
    install_requires=[
        "json-log-formatter~=0.5",
        "opentelemetry-api~=1.27.0",
        "opentelemetry-sdk~=1.27.0",
        "opentelemetry-exporter-otlp-proto-grpc~=1.27.0",
        "pydantic>=2.0,<3",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "run-storefront-session=storefront_telemetry.entrypoints.run_storefront_session:entrypoint",
        ],
    },
)
