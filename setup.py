from setuptools import setup, find_packages

setup(
    name='clusterward',
    version='0.1.0',
    packages=find_packages(exclude=['scripts']),
    include_package_data=True,
    install_requires=[
        'typer[all]',
        'fastapi',
        'uvicorn',
        'kubernetes',
        'pydantic>=2',
        'pyyaml',
        'python-dotenv',
        'requests',
        'urllib3'
    ],
    extras_require={
        'test': [
            'pytest',
            'jsonschema',
            'httpx',
        ]
    },
    entry_points={
        'console_scripts': [
            'clusterward=clusterward.cli:app'
        ]
    },
    author='Your Name',
    description='Self-managing cluster operator: node purge, storage replication, certificate rotation and host tasks',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.9',
)
