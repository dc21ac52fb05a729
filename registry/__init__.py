"""
Workspace registry backend.

Maps a user's email address to the workspace used for the embedded widget,
stored in Redis when configured and in a local JSON file otherwise.
"""
