from setuptools import setup, find_packages

setup(
    name="radixplan",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "numpy>=1.17.0",
        "scipy>=1.3.0",
        "pyfftw>=0.12.0",
        "psutil>=5.6.0",
    ],
    extras_require={
        "dev": ["pytest", "pytest-cov", "black", "flake8"],
    },
    python_requires=">=3.7",
    description="Mixed-radix Cooley-Tukey DFT plans for arbitrary composite sizes",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering",
    ],
)
