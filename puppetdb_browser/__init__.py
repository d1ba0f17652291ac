"""PuppetDB object provider for the hierarchy browser."""

__version__ = "0.1.0"
