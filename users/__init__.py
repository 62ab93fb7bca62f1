"""users/ -- User storage and management for UserGate.

Layer rule: users/ imports from auth/ and core/ only.
api/ imports from users/, not the other way around.
"""
