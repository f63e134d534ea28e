"""
Jobs module.

- Job intake: live customer search, unit selection, job + work items
- Admin-only two-step job deletion
"""
