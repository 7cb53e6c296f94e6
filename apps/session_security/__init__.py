"""
Session validation, fingerprinting and refresh.
"""
