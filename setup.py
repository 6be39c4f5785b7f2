from setuptools import setup, find_packages

package_name = 'gesture_stream'

setup(
    name=package_name,
    version='1.0.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.10',
    install_requires=[
        'numpy>=1.24',
        'scipy>=1.10',
        'opencv-python>=4.8',
        'websockets>=14.0',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    zip_safe=True,
    maintainer='Hasan Çoban',
    maintainer_email='hasancoban@std.iyte.edu.tr',
    description='Hand pose and scene capture streaming client for gesture inference backends',
    license='MIT',
    entry_points={
        'console_scripts': [
            'gesture-stream = gesture_stream.main:main',
        ],
    },
)
