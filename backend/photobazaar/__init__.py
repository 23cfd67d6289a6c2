"""
PhotoBazaar Backend
===================

What: REST API for a photo marketplace. Photographers upload images,
      buyers browse, like, purchase and download them.

Layers:

    ┌─────────────────────────────────────┐
    │   Routes (API Layer)                │  HTTP in, envelope out
    ├─────────────────────────────────────┤
    │   Security (tokens, policy)         │  who is calling, may they?
    ├─────────────────────────────────────┤
    │   Services (entitlement engine,     │  business rules, counters
    │   catalog, accounts, files, email)  │
    ├─────────────────────────────────────┤
    │   Models & Schemas                  │  SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Database (async sessions)         │  one transaction per request
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
