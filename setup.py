from setuptools import setup, find_packages

setup(
    name="bulk-mail-dispatch",
    version="0.1.0",
    description="Grouped bulk mail dispatch with attachment catalogs, retry and live progress",
    author="",
    author_email="",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "Jinja2>=3.0.0",
        "email-validator>=2.0.0",
        "python-dotenv>=0.19.0",
        "click>=8.0.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "PyYAML>=5.4.0",
        "tabulate>=0.9.0",
        "rich>=12.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mail-dispatch=mail_dispatch.cli:main",
        ],
    },
)
