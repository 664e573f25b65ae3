"""docbatch - bulk documentation and test generation through a provider's batch API."""

__version__ = "0.1.0"
