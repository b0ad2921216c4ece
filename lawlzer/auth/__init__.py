"""
Session & OAuth boundary for the Lawlzer site.

Design goals:
- Provider-agnostic OAuth (Google, Discord, GitHub).
- Opaque server-side sessions keyed by an unguessable token.
- Cookie scoping that lets the root site and its subdomains share a session.
"""
