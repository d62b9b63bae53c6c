"""
Setup script for ldapauth.

Non-blocking LDAP authentication and group-aware directory search.
"""

from setuptools import setup, find_packages

setup(
    name="ldapauth",
    version="0.2.0",
    description="Non-blocking LDAP bind authentication and transitive group search",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "ldap3>=2.9",
        "pydantic>=2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
)
