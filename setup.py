from setuptools import setup, find_packages

setup(
    name='seasonal-sdm',
    version='0.1.0',
    description='Environmental data extraction and aggregation for seasonal species distribution models',
    packages=find_packages(include=['seasonal_sdm', 'seasonal_sdm.*']),
    python_requires='>=3.11',
    install_requires=[
        'numpy',
        'pandas<3',
        'pyarrow',
        'geopandas',
        'xarray',
        'rioxarray',
        'rasterio',
        'affine>=3,<3.0.1',
        'scikit-learn',
        'elapid',
        'pydantic>=2',
        'pyyaml',
        'pyhere',
        'typer',
        'typing_extensions',
        'tqdm',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'seasonal-sdm=seasonal_sdm.cli:app',
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
    ],
)
