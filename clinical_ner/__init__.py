"""Clinical named-entity extraction frontend for the MetaMapLite REST service."""

__version__ = "1.0.0"
