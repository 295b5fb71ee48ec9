from setuptools import setup, find_packages

from codecs import open
from os import path

here = path.abspath(path.dirname(__file__))

with open(path.join(here, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='easyphrp',
    version='0.1.0',
    description='EasyPHRP: Synopsis and first hits files from MS-GF+ search results',
    long_description=long_description,
    long_description_content_type='text/markdown',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'License :: OSI Approved :: BSD License',
        'Operating System :: OS Independent',
        'Environment :: Console',
        'Intended Audience :: Science/Research',
        'Topic :: Scientific/Engineering :: Bio-Informatics',
        'Topic :: Scientific/Engineering :: Chemistry',
        'Programming Language :: Python :: 3',
    ],
    packages=find_packages(exclude=['contrib', 'docs', 'tests']),
    include_package_data=True,
    install_requires=['Click', 'pandas>=1.4.0', 'biopython', 'pyopenms>=2.6.0'],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'easyphrp=easyphrp.main:cli',
        ],
    },
)
