"""SOS Relay backend: event store, connection registry, broadcast and session protocol"""
