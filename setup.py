from setuptools import setup, find_packages

setup(
    name="flowgraph",
    version="0.1.0",
    packages=find_packages(include=["flowgraph", "flowgraph.*"]),
    install_requires=[
        "pydantic>=2",
        "fastapi",
        "sqlalchemy[asyncio]>=2",
        "aiosqlite",
        "uvicorn",
        "python-dotenv",
        "httpx",
        "jsonschema",
        "pytest",
        "pytest-asyncio",
        "pytest-cov",
    ],
    entry_points={
        "console_scripts": [
            "flowgraph-run=flowgraph.src.cli.run_workflow:main",
            "flowgraph-server=flowgraph.src.web.run_workflow_server:main",
        ],
    },
)
