"""atlascache: lightmap UV atlas consolidation with a content-addressed disk cache."""

__version__ = "0.1.0"
