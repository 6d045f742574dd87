"""forkplan — duration-balanced test plans for parallel test forks."""

__version__ = "0.1.0"
