"""
Organizations, memberships, invitations and tenant isolation.
"""
