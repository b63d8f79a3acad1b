from setuptools import setup, find_packages

setup(name='coopio',
      version='0.0.1',
      description='A small single-threaded cooperative concurrency runtime: futures, tasks, semaphores and queues on an explicit scheduler',
      classifiers=[
          "Programming Language :: Python :: 3",
          "License :: OSI Approved :: MIT License",
      ],
      keywords='async coroutine concurrency scheduler',
      license='MIT',
      python_requires='>=3.8',
      install_requires=[
          'outcome',
          'trio',
      ],
      extras_require={
          'test': ['pytest'],
      },
      packages=find_packages(include=['coopio', 'coopio.*']),
)
