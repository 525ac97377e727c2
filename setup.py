from setuptools import setup, find_packages

setup(
    name="photoframe",
    version="0.1.0",
    description="Kiosk photo frame slideshow with guest uploads and an offline photo cache",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"photoframe.common": ["default_config.yaml"]},
    python_requires=">=3.8",
    install_requires=[
        "PyYAML>=6.0",
        "pyzmq>=25.0",
        "requests>=2.31.0",
        "Flask>=2.3.0",
    ],
    extras_require={
        "gcs": [
            "google-cloud-storage>=2.10.0",
        ],
        "dev": [
            "pytest>=7.4.0",
            "black>=23.0.0",
            "pylint>=2.17.0",
        ]
    },
)
