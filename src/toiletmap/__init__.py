"""toiletmap - a crowdsourced directory of public toilets backed by a versioned blob store."""

__version__ = "0.1.0"
