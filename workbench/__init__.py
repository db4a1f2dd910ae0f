"""Service Workbench backend - data source registration and reachability.

Registers AWS accounts, S3 buckets and studies as research data sources and
tracks whether the application can still reach them.
"""

try:
    from importlib.metadata import version

    __version__ = version("service-workbench")
except Exception:
    __version__ = "0.0.0.dev0"

__all__ = ["__version__"]
