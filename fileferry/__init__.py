"""FileFerry: upload and download opaquely identified files over HTTP."""

__version__ = '0.2.0'
