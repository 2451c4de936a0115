"""Care application for the HealthApp backend.

Accounts, authentication (passwords, JWTs, TOTP), encrypted medical
records, consultations and the access audit trail.
"""
