"""CMDB API client.

Client library for the CMDB REST API: item and relationship CRUD, paginated
collection fetches and item counts, with uniform error reporting.
"""

__version__ = "0.1.0"
