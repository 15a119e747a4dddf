"""Notifications: domain events in, persisted Notification records out.

- events: the domain events commands return
- dispatcher: best-effort fan-out of those events into notifications
- service: listing, unread counts and acknowledgement for recipients
"""
