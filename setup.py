from setuptools import setup, find_packages


setup(
    name="n76icp",
    version="0.1.0",
    description="In-circuit programmer for Nuvoton N76E003 and MS51 microcontrollers",
    license="0-clause BSD License",
    python_requires="~=3.8",
    setup_requires=[
        "setuptools",
    ],
    install_requires=[
        "fx2>=0.9",
        "pyvcd",
        "bitarray",
    ],
    extras_require={
        "rpi": [
            "RPi.GPIO",
        ],
    },
    packages=find_packages(exclude=["tests", "tests.*"]),
    entry_points={
        "console_scripts": [
            "n76icp = n76icp.cli:run_main"
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'License :: OSI Approved', # ' :: 0-clause BSD License', (not in PyPI)
        'Topic :: Software Development :: Embedded Systems',
        'Topic :: System :: Hardware',
    ],
)
