"""Render gateway: media delivery, uploads and render job status tracking."""
