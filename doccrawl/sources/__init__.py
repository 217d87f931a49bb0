"""Collaborators the background tasks talk to: document fetching, the
GitHub API and suppression scoring."""
