"""Building blocks for a distributed flight-data pipeline: message encoding, queue protocols, EOF propagation and row-processing stages."""

__version__ = "0.1.0"