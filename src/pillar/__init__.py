"""Pillar — task management backend.

Categories, labels, filter presets, tasks and notifications, with a
realtime sync stream that tells a user's other open sessions when
their data changed.
"""

__version__ = "0.1.0"
