from setuptools import find_packages, setup

# Installation du service de réception des lots
# Utiliser :
#   pip install -e .[test]

setup(
    name='reception-lots',
    version='1.0',
    description="Suivi du reconditionnement des lots de matériel reçus",
    packages=find_packages(include=['reception', 'reception.*']),
    package_data={
        'reception.services.pdf.lot_report': ['templates/*.html'],
    },
    python_requires='>=3.10',
    install_requires=[
        'fastapi',
        'uvicorn',
        'pydantic>=2',
        'httpx',
        'reportlab',
        'playwright',
        'bcrypt',
        'PyJWT',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': ['reception-server=reception.main:run'],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
)
