import setuptools
from setuptools import find_packages

with open("readme.md", "r") as fh:
    long_description = fh.read()


vars2find = ["__author__", "__version__", "__url__"]
vars2readme = {}
with open("./asset_vault/__init__.py") as f:
    for line in f.readlines():
        for v in vars2find:
            if line.startswith(v):
                line = line.replace(" ", "").replace('"', "").replace("'", "").strip()
                vars2readme[v] = line.split("=")[1]

core_deps = [
    "networkx",
    "tenacity",
    "aioboto3",
    "httpx",
    "pydantic>=2.0",
]

setuptools.setup(
    name="asset-vault",
    url=vars2readme["__url__"],
    version=vars2readme["__version__"],
    author=vars2readme["__author__"],
    description="Backup and restore for entity collections and the files they reference",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=core_deps,
    extras_require={
        "api": [
            "fastapi",
            "uvicorn",
            "pydantic-settings",
            "python-multipart",
        ],
        "test": [
            "pytest",
            "pytest-asyncio",
            "fastapi",
            "pydantic-settings",
            "python-multipart",
        ],
        "all": [
            "fastapi",
            "uvicorn",
            "pydantic-settings",
            "python-multipart",
        ],
    },
)
