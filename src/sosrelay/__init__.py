"""SOS Relay - offline emergency alert relay for local networks"""

__version__ = "1.0.0"
