"""
Billingo CLI - Three-layer architecture for the Billingo API v3.

Layers:
- core: HTTP client, error taxonomy and response types
- sdk: BillingoClient with one operations object per resource
- cli: Command-line interface with pretty/JSON output
"""

from billingo_cli.sdk import BillingoClient

__version__ = "0.1.0"
__all__ = ["BillingoClient"]
