from setuptools import find_packages, setup


def _discover_packages() -> list[str]:
    root_packages = find_packages(where=".", include=["bench_history", "bench_history.*", "scripts", "scripts.*"])
    return sorted(set(root_packages))


setup(
    name="bench-history",
    version="0.1.0",
    description="Benchmark history storage and regression detection for CI pipelines",
    packages=_discover_packages(),
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
)
