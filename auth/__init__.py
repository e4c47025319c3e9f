"""auth/ -- Token authentication and authorization package for TokenGate.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, web/, or articles/.
api/ and web/ import from auth/, not the other way around.
"""
