from setuptools import setup, find_packages
import re

# Read version from __init__.py without importing the package
with open("kube_migrator/__init__.py", "r", encoding="utf-8") as f:
    version_match = re.search(r'__version__\s*=\s*[\'"]([^\'"]*)[\'"]', f.read())
    version = version_match.group(1) if version_match else "0.1.0"

# Read long description from README.md
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Read requirements from requirements.txt
with open("requirements.txt", "r", encoding="utf-8") as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith("#")]

setup(
    name="kube-migrator",
    version=version,
    packages=find_packages(include=["kube_migrator", "kube_migrator.*"]),
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "kube-migrator=kube_migrator.__main__:main",
        ],
    },
    description="Tool for migrating namespaced workloads between Kubernetes clusters",
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords="kubernetes, migration, backup, restore, cluster",
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    include_package_data=True,
    package_data={
        "kube_migrator": ["py.typed"],
    },
)
