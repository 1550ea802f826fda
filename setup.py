"""
CHIP-8 Virtual Machine Setup
"""

from setuptools import setup, find_packages

setup(
    name='chip8-emulator',
    version='0.1.0',
    description='CHIP-8 Virtual Machine Interpreter',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    author='CHIP-8 Emulator Team',
    python_requires='>=3.8',
    packages=find_packages(exclude=['tests', 'examples']),
    install_requires=[
        'rich',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'chip8-emulator=chip8_emulator.__main__:main',
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Intended Audience :: Education',
        'Topic :: System :: Emulators',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
    ],
)
