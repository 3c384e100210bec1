"""Data sources feeding raw chain facts to the price feeds."""

from .base import ChainDataSource
from .Web3DataSource import Web3DataSource

__all__ = [
    "ChainDataSource",
    "Web3DataSource",
]
