"""Engagements: professionals assigned to events, and the listings derived from them.

- accept_request: the AcceptRequest command run when a request is accepted
- service: direct join/leave and organizer-side event changes
"""
