"""auth/ -- Authentication package for RoboFleet.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or fleet/.
api/ and fleet/ import from auth/, not the other way around.
"""
