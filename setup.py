from setuptools import setup, find_packages

setup(
    name="quadipm",
    version="0.1.0",
    packages=find_packages(include=["quadipm", "quadipm.*"]),
    install_requires=["numpy", "scipy>=1.12", "matplotlib", "qdldl"],
    extras_require={"test": ["pytest"]},
    author="Your Name",
    description="Regularized interior point method for convex quadratic programs with mixed precision",
    license="MIT",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License"
    ]
)
