"""Collaborators of the approval engine: manual registry and notifications."""
