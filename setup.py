from pathlib import Path

from setuptools import find_namespace_packages, setup

ROOT = Path(__file__).parent

# Read requirements (ignore comments and recursive -r entries)
req_path = ROOT / "requirements.txt"
requirements = []
if req_path.exists():
    for line in req_path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("-r"):
            continue
        requirements.append(line)

readme = (ROOT / "README.md").read_text(encoding="utf-8") if (ROOT / "README.md").exists() else ""

setup(
    name="agrosense-irrigation-core",
    version="1.0.0",
    description="AgroSense soil-moisture telemetry and irrigation decision core",
    long_description=readme,
    long_description_content_type="text/markdown",
    packages=find_namespace_packages(include=("app", "app.*", "infrastructure", "infrastructure.*")),
    python_requires=">=3.10,<4",
    install_requires=requirements or [
        "Flask>=3.0.0",
        "pydantic>=2.5.0",
        "requests>=2.31.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "black>=23.7.0",
            "flake8>=6.0.0",
            "mypy>=1.5.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Scientific/Engineering",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    keywords="iot agriculture irrigation soil-moisture sensors",
    entry_points={
        "console_scripts": [
            "agrosense-server=run_server:main",
        ]
    },
    py_modules=["run_server"],
    include_package_data=True,
)
