from setuptools import setup, find_packages

setup(name='spindle',
      version='0.1.0',
      description='Sequential coroutines on top of callback-based concurrency, with futures, streams, and task-local context',
      classifiers=[
          "Programming Language :: Python :: 3",
          "License :: OSI Approved :: MIT License",
          "Framework :: Trio",
      ],
      keywords='coroutine callback continuation trio',
      license='MIT',
      python_requires='>=3.8',
      packages=find_packages(include=['spindle', 'spindle.*']),
      install_requires=['trio>=0.22', 'outcome>=1.3'],
)
