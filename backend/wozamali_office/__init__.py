"""Application package for the Woza Mali Office admin backend.

This package exposes the service, repository and model modules used by
the FastAPI application that runs the recycling office: pickup approval,
user and role administration, wallets, withdrawals and the Green Scholar
Fund. Individual modules contain the concrete implementations.
"""
