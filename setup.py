from setuptools import setup

# Read version from openports/VERSION
with open('openports/VERSION') as f:
    VERSION = f.read().strip()

setup(
    name='openports',
    version=VERSION,
    description='Listening TCP ports and docker containers, with safe process and container actions',
    long_description=open('README.md', encoding='utf-8').read(),
    long_description_content_type='text/markdown',
    license='MIT',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Topic :: System :: Networking :: Monitoring',
    ],
    python_requires='>=3.8',
    packages=['openports'],
    package_data={'openports': ['VERSION']},
    install_requires=[
        'psutil',
        'pyyaml',
    ],
    entry_points={
        'console_scripts': [
            'openports=openports:cli_entry',
        ],
    },
)
