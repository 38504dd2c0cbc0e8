"""Ticket attachments: metadata rows plus blobs on local storage."""
