"""MeshHub client: authenticated task orchestration and metered chat."""

__version__ = "0.3.0"
