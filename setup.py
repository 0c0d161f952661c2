from setuptools import setup, find_packages

setup(
    name             = 'cluster-triage',
    version          = '0.3.0',
    description      = 'Cluster triage — interactive drill-down and qualification of precomputed event clusters',
    packages         = find_packages(exclude=['tests*']),
    install_requires = open('requirements.txt').read().splitlines(),
    extras_require   = {
        'test': ['pytest>=7'],
    },
    entry_points     = {
        'console_scripts': [
            'triage = triage.cli:main',
        ],
    },
    python_requires  = '>=3.10',
    classifiers      = [
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
)
