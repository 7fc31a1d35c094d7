# accounts/__init__.py
"""
Accounts app - identity and tenancy for the agency backend.

This app provides:
- User: account with an immutable account kind (owner / team member)
- Organization: the tenant, owned by exactly one owner account
- Membership: account -> organization link with a role
- membership_of: the privileged, non-recursive membership resolver
- authorize: the policy evaluator every protected operation goes through
- AccessGateMiddleware: page-area gate plus tenant/RLS context setup
"""
