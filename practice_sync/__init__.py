# practice_sync/__init__.py
# Offline-first sync core for the practice-management app.
__version__ = "0.1.0"
