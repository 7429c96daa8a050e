"""
Setup script for the Creator Commerce backend
"""
from setuptools import setup, find_packages

setup(
    name="creator-commerce",
    version="0.1.0",
    description="Multi-tenant backend for creator businesses",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={"creator_commerce": ["data/*.yaml"]},
    include_package_data=True,
    python_requires=">=3.10,<3.14",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.27",
        "sqlalchemy>=2.0",
        "pydantic>=2.5",
        "email-validator>=2.0",
        "psycopg2-binary>=2.9",
        "python-jose[cryptography]>=3.3",
        "apscheduler>=3.10,<4",
        "python-dotenv>=1.0",
        "pyyaml>=6.0",
        "tzdata>=2024.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "httpx>=0.25",
        ],
    },
)
