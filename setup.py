from setuptools import setup, find_packages

setup(
    name="organizadin",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        "cryptography>=42.0.5",
        "argon2-cffi>=23.1.0",
        "python-dotenv>=1.0.1",
    ],
    extras_require={
        "test": ["pytest>=7.0", "hypothesis>=6.0"],
    },
    python_requires=">=3.8",
)
