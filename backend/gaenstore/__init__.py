"""GAEN Key Store: storage and publication of Temporary Exposure Keys"""

__version__ = "1.0.0"
