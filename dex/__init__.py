"""
dex/ - Venue access: ABI word encoding and quoting adapters.
"""
