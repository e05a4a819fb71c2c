import sys
import traceback
from setuptools import find_packages, setup

def get_packages():
    """Get package list with debug information."""
    try:
        packages = find_packages(include=["parley", "parley.*"])
        print(f"Found packages: {packages}")
        return packages
    except Exception as e:
        print(f"Error finding packages: {e}")
        print(f"Traceback:\n{traceback.format_exc()}")
        return []

try:
    print(f"Python version: {sys.version}")

    setup(
        name="parley",
        version="0.1.0",
        description="Conversational agent controller for local language model servers",
        packages=get_packages(),
        package_dir={"": "."},
        package_data={"parley": ["config.yml"]},  # Default configuration layer
        install_requires=[
            # LLM backends
            "httpx>=0.24.0",
            "ollama>=0.2.0",
            # Configuration
            "pyyaml>=6.0",
            "python-dotenv>=0.19.0",
            # CLI
            "rich>=10.0.0",
            "typer>=0.4.0",
        ],
        extras_require={
            "test": [
                "pytest>=6.0.0",
                "pytest-asyncio>=0.21.0",
            ],
            "dev": [
                "black>=21.0.0",
                "isort>=5.0.0",
                "ruff>=0.1.0",
            ],
        },
        python_requires=">=3.11",
        entry_points={
            "console_scripts": [
                "parley=parley.cli:app",
            ],
        },
    )
except Exception as e:
    print(f"Setup failed: {e}")
    print(f"Traceback:\n{traceback.format_exc()}")
    raise
