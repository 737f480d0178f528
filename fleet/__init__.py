"""fleet/ -- Groups, robots, grants and settings for RoboFleet.

Layer rule: fleet/ imports from stdlib, third-party libraries, core/ and
auth/ (for the users table and UserStore). It does NOT import from api/.
access.py stays pure: no I/O, no logging.
"""
