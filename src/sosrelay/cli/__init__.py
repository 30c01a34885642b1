"""SOS Relay command line interface"""
