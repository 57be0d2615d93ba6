# get path to current directory
import os

import setuptools


curdir = os.path.dirname(os.path.abspath(__file__))

with open(f"{curdir}/README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()


install_reqs = [
    "jax>=0.4.30",
    "equinox>=0.11.4",
    "haliax>=1.4.dev0",
    "numpy",
    "draccus>=0.8.0",
    "fsspec",
    "transformers",
]

setuptools.setup(
    name="lockstep",
    version="0.1.0",
    description="Jax-based greedy text generation with fixed shapes",
    long_description=long_description,
    long_description_content_type="text/markdown",
    install_requires=install_reqs,
    extras_require={"test": ["pytest", "chex"]},
    python_requires=">=3.10",
    packages=setuptools.find_packages(where="src", exclude=("tests",)),
    package_dir={"": "src/"},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS X",
        "Programming Language :: Python :: 3.10",
    ],
    include_package_data=True,
)
