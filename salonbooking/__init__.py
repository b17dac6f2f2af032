"""
Salon appointment booking: slot availability, booking and professional provisioning.
"""

__version__ = "0.1.0"
