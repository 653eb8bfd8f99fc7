"""
Pegasus Astro Driver Services

- Device Service - Serial I/O, refresh loops, property writes
- MQTT Service - Publishes device state and takes update requests over MQTT
"""
