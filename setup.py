import os
import sys

from setuptools import setup

# Don't import posthog_lite here, since deps may not be installed
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "posthog_lite"))
from version import VERSION  # noqa: E402

long_description = """
posthog-lite buffers analytics events and ships them to PostHog in batches,
and evaluates feature flags locally from a periodically refreshed cache.

This package requires Python 3.9 or higher.
"""

install_requires = [
    "requests>=2.7,<3.0",
    "backoff>=1.10.0",
    "python-dateutil>=2.2",
    "typing_extensions>=4.2.0",
]

tests_require = [
    "mock>=2.0.0",
    "parameterized>=0.8.1",
    "pytest",
    "freezegun>=1.0",
]

setup(
    name="posthog-lite",
    version=VERSION,
    url="https://github.com/posthog/posthog-python",
    author="Posthog",
    author_email="hey@posthog.com",
    maintainer="PostHog",
    maintainer_email="hey@posthog.com",
    license="MIT License",
    description="Batch analytics events and evaluate feature flags with PostHog.",
    long_description=long_description,
    packages=["posthog_lite", "posthog_lite.test"],
    python_requires=">=3.9",
    install_requires=install_requires,
    extras_require={"test": tests_require},
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
