"""Core domain package for tgharvest.

Core contains conversion contracts, the resolver chain, merging and media
acquisition without any Telethon or storage-specific code, keeping the
pipeline portable and testable with fakes.
"""
