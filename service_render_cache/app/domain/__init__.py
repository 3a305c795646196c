"""
Controller, request state and host framework glue for cached rendering.
"""
