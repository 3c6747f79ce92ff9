"""scanimg: report size and resolution for the images a source tree references."""

__version__ = "0.1.0"
