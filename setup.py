from setuptools import setup, find_packages

setup(
    name             = 'dispatch-velocity',
    version          = '1.0.0',
    description      = 'Dispatch Velocity — signal extraction and priority triage for service-dispatch leads and jobs',
    author           = 'Nous Loop Solutions',
    packages         = find_packages(exclude=['tests*']),
    install_requires = open('requirements.txt').read().splitlines(),
    extras_require   = {
        'test': [
            'pytest>=7.0',
            'httpx>=0.24',
        ],
    },
    entry_points     = {
        'console_scripts': [
            'velocity = velocity.cli:main',
        ],
    },
    python_requires  = '>=3.10',
    classifiers      = [
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
)
