"""Host-side driver for GQ GMC Geiger-Muller counters."""

__version__ = "0.1.0"
