"""Fleet API: fleet management back end with dynamic permission evaluation."""

__version__ = "0.4.0"
