# accounts/throttles.py
"""
Rate limiting classes for authentication endpoints.

These throttles protect against:
- Bot signups (owner registration)
- Brute force attacks (both sign-in surfaces share one budget)
"""

from rest_framework.throttling import AnonRateThrottle


class SignupThrottle(AnonRateThrottle):
    """
    Rate limit owner sign-ups.

    Configured via settings.REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']['signup']
    """
    scope = 'signup'


class LoginThrottle(AnonRateThrottle):
    """
    Rate limit sign-in attempts on the owner and team surfaces.

    Configured via settings.REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']['login']
    """
    scope = 'login'
