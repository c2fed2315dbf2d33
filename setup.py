"""Setup module for azuredsvm."""

import re
from setuptools import setup
from os import path

here = path.abspath(path.dirname(__file__))
with open(path.join(here, 'README.md'), encoding='utf-8') as readme:
    long_description = readme.read()
with open(path.join(here, 'azuredsvm', '__init__.py'),
          encoding='utf-8') as init:
    source = init.read()
__title__ = re.search(r"^__title__ = '([^']+)'", source, re.M).group(1)
__ver__ = re.search(r"^__ver__ = '([^']+)'", source, re.M).group(1)

setup(
    name=__title__,
    version=__ver__,
    description='Data Science Virtual Machines and R clusters on Azure',
    long_description=long_description,
    long_description_content_type='text/markdown',
    license='MIT',
    classifiers=[
        "Development Status :: 4 - Beta",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "Intended Audience :: End Users/Desktop",
        "Intended Audience :: System Administrators",
        "Topic :: System :: Clustering",
        "Topic :: Scientific/Engineering",
        "Topic :: System :: Systems Administration"
    ],
    keywords='r azure dsvm cluster cloud',
    packages=['azuredsvm'],
    python_requires='>=3.8',
    install_requires=['azure-identity', 'azure-mgmt-compute',
                      'azure-mgmt-network', 'azure-mgmt-resource<26',
                      'paramiko>=3.2'],
    extras_require={'dev': ['coverage', 'pytest']},
    package_data={'azuredsvm': ['data/*']},
    entry_points={
        'console_scripts': [
            'azuredsvm-config=azuredsvm.__exec__:config',
            'azuredsvm=azuredsvm.__exec__:main',
            'azuredsvm-keys=azuredsvm.__exec__:keys',
            'azuredsvm-sizes=azuredsvm.__exec__:sizes',
            'azuredsvm-run=azuredsvm.__exec__:run',
            'azuredsvm-terminate=azuredsvm.__exec__:terminate'
        ]
    }
)
