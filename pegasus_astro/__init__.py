"""
Pegasus Astro device driver.

Drives Pegasus Astro Pocket Powerbox Advance (PPBA) units over USB serial
and exposes them over MQTT or an HTTP/JSON RPC API.
"""

__version__ = "0.1.0"
