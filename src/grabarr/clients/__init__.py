"""API clients for indexer managers."""

from grabarr.clients.base import BaseArrClient
from grabarr.clients.prowlarr import ProwlarrClient

__all__ = ["BaseArrClient", "ProwlarrClient"]
