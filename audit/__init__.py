"""audit/ -- Activity log persistence and best-effort event recording.

Layer rule: audit/ may import from auth.models and core/ only. api/ imports
from audit/, not the other way around.
"""
