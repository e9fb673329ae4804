"""
Infrastructure adapters: messaging client interface, bridge client, QR output.
"""
