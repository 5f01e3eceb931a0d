"""basequery: Bases-style queries over markdown vaults."""

from basequery.api import load_spec, query_vault

__version__ = "0.1.0"

__all__ = ["load_spec", "query_vault", "__version__"]
