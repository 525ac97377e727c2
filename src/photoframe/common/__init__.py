"""
Shared building blocks: configuration, logging, IPC and the remote photo client.
"""
