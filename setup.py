from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="keeper-jira",
    version="1.0.0",
    author="Your Name",
    author_email="your.email@example.com",
    description="Turns Keeper Security alert webhooks into Jira tickets and drives the Keeper Commander async queue",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/keeper-jira",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.4.0"],
    },
    entry_points={
        "console_scripts": [
            "keeperjira=keeperjira.cli:cli",
        ],
    },
    include_package_data=True,
    package_data={
        "keeperjira": ["*.yml", "*.yaml"],
    },
)
