"""auth/ -- Session lifecycle and authorization package for CourseGate.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or catalog/. Resource ownership is consumed
through the ResourceOwnership protocol in auth/policy.py.
api/ imports from auth/, not the other way around.
"""
