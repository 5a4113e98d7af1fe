"""
Business logic and service layer.

Contains the slow query report, the query comparison and the connection
use cases.
"""
# NOTE: Imports are lazy so the remote client can import the coercion helpers
# without pulling in the services that depend on the client.
# Import modules directly when needed (e.g., from chmanager.services.report_service import ReportService)

__all__ = [
    "coercion",
    "report_service",
    "compare_service",
    "connection_service",
]
