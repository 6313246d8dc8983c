"""
Domains package for organizing business logic into clear, separated modules.

This package contains four domains:
- accounts: Users, roles and authentication
- listings: Rental listings, photos and the predicted-rent read path
- predictions: Feature extraction, scoring and the asynchronous prediction worker
- chat: Messages between tenants and owners
"""
