from setuptools import setup

setup(
    name="fa_prom_target_lens",
    version="1.0",
    description="Searchable summary of Prometheus scrape targets by scrape pool and label",
    url="https://github.com/flightaware/target-lens",
    author="",
    author_email="",
    license="BSD-3",
    packages=["fa_target_lens"],
    python_requires=">=3.10",
    install_requires=[
        "aiofiles",
        "attrs",
        "hypercorn",
        "jsonschema",
        "pyyaml",
        "quart",
        "requests",
        "toml",
        "validators",
    ],
    extras_require={
        "test": ["hypothesis", "prometheus_client<0.21", "pytest", "pytest-asyncio"]
    },
    zip_safe=False,
)
