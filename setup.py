from setuptools import find_namespace_packages, setup

setup(
    name="slide-narration-backend",
    version="0.1.0",
    packages=find_namespace_packages(include=["shared*", "services*"]),
    py_modules=["app"],
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "openai>=1",
        "aiohttp",
        "python-dotenv",
        "pyyaml",
    ],
    extras_require={
        "test": ["pytest", "pytest-asyncio", "httpx"],
    },
    include_package_data=True,
    package_data={"": ["*.yaml"]},
    data_files=[("config", ["config/pipeline.yaml"])],
    python_requires=">=3.11",
    description="Slide narration backend with audio pre-generation and conversational Q&A",
)
